"""Tests for the ONNX model manager and its readiness state machine."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from wastesort.config import Settings
from wastesort.errors import ModelNotReadyError
from wastesort.ml.model_manager import ModelState, OnnxModelManager, model_spec_from_settings

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_settings(**overrides: object) -> Settings:
    defaults: dict[str, object] = {
        "device": "cpu",
        "models_dir": "/tmp/wastesort_test_models",
        "model_repo_id": "wastesort/dry-wet-classifier",
        "model_filename": "dry_wet_640.onnx",
        "input_size": 640,
        "intra_op_threads": 0,
        "inter_op_threads": 1,
        "gpu_mem_limit": 2_147_483_648,
    }
    defaults.update(overrides)
    return Settings(**defaults)  # type: ignore[arg-type]


# ---------------------------------------------------------------------------
# Model spec tests
# ---------------------------------------------------------------------------


class TestModelSpec:
    def test_hub_spec_from_settings(self) -> None:
        spec = model_spec_from_settings(_make_settings())
        assert spec.name == "dry_wet_640"
        assert spec.repo_id == "wastesort/dry-wet-classifier"
        assert spec.local_path is None
        assert spec.input_size == 640
        assert spec.num_classes == 2

    def test_local_path_overrides_filename(self) -> None:
        spec = model_spec_from_settings(_make_settings(model_path="/opt/models/bins.onnx"))
        assert spec.local_path == Path("/opt/models/bins.onnx")
        assert spec.filename == "bins.onnx"
        assert spec.name == "bins"


# ---------------------------------------------------------------------------
# OnnxModelManager tests
# ---------------------------------------------------------------------------


class TestEnsureDownloaded:
    @patch("wastesort.ml.model_manager.hf_hub_download")
    def test_calls_hf_hub_download(self, mock_download: MagicMock) -> None:
        mock_download.return_value = "/tmp/wastesort_test_models/dry_wet_640.onnx"
        mgr = OnnxModelManager(_make_settings())

        path = mgr.ensure_downloaded()

        mock_download.assert_called_once_with(
            repo_id="wastesort/dry-wet-classifier",
            filename="dry_wet_640.onnx",
            local_dir="/tmp/wastesort_test_models",
        )
        assert path == Path("/tmp/wastesort_test_models/dry_wet_640.onnx")

    @patch("wastesort.ml.model_manager.hf_hub_download")
    def test_local_model_skips_download(self, mock_download: MagicMock, tmp_path: Path) -> None:
        model_file = tmp_path / "bins.onnx"
        model_file.touch()
        mgr = OnnxModelManager(_make_settings(model_path=str(model_file)))

        assert mgr.ensure_downloaded() == model_file
        mock_download.assert_not_called()

    def test_missing_local_model_raises(self, tmp_path: Path) -> None:
        mgr = OnnxModelManager(_make_settings(model_path=str(tmp_path / "missing.onnx")))
        with pytest.raises(FileNotFoundError, match="missing.onnx"):
            mgr.ensure_downloaded()


class TestLoadStateMachine:
    def test_starts_unloaded(self) -> None:
        mgr = OnnxModelManager(_make_settings())
        assert mgr.state is ModelState.UNLOADED
        assert mgr.error is None

    def test_get_session_before_load_raises(self) -> None:
        mgr = OnnxModelManager(_make_settings())
        with pytest.raises(ModelNotReadyError, match="unloaded"):
            mgr.get_session()

    @patch("wastesort.ml.model_manager.InferenceSession")
    @patch("wastesort.ml.model_manager.hf_hub_download")
    def test_load_reaches_ready(self, mock_download: MagicMock, mock_session_cls: MagicMock) -> None:
        mock_download.return_value = "/tmp/wastesort_test_models/dry_wet_640.onnx"
        mock_session = MagicMock()
        mock_session_cls.return_value = mock_session
        mgr = OnnxModelManager(_make_settings())

        assert mgr.load() is ModelState.READY
        assert mgr.state is ModelState.READY
        assert mgr.get_session() is mock_session

    @patch("wastesort.ml.model_manager.InferenceSession")
    @patch("wastesort.ml.model_manager.hf_hub_download")
    def test_load_runs_once(self, mock_download: MagicMock, mock_session_cls: MagicMock) -> None:
        mock_download.return_value = "/tmp/wastesort_test_models/dry_wet_640.onnx"
        mgr = OnnxModelManager(_make_settings())

        mgr.load()
        mgr.load()

        mock_session_cls.assert_called_once()
        mock_download.assert_called_once()

    @patch("wastesort.ml.model_manager.InferenceSession")
    @patch("wastesort.ml.model_manager.hf_hub_download")
    def test_load_failure_is_terminal(self, mock_download: MagicMock, mock_session_cls: MagicMock) -> None:
        mock_download.return_value = "/tmp/wastesort_test_models/dry_wet_640.onnx"
        mock_session_cls.side_effect = RuntimeError("bad protobuf")
        mgr = OnnxModelManager(_make_settings())

        assert mgr.load() is ModelState.LOAD_FAILED
        assert mgr.error == "RuntimeError: bad protobuf"

        # No retry: a second call leaves the failure in place.
        mock_session_cls.side_effect = None
        assert mgr.load() is ModelState.LOAD_FAILED
        mock_session_cls.assert_called_once()

        with pytest.raises(ModelNotReadyError, match="bad protobuf"):
            mgr.get_session()

    @patch("wastesort.ml.model_manager.hf_hub_download")
    def test_download_failure_is_load_failure(self, mock_download: MagicMock) -> None:
        mock_download.side_effect = OSError("network down")
        mgr = OnnxModelManager(_make_settings())

        assert mgr.load() is ModelState.LOAD_FAILED
        assert "network down" in (mgr.error or "")

    @patch("wastesort.ml.model_manager.InferenceSession")
    @patch("wastesort.ml.model_manager.hf_hub_download")
    def test_shutdown_clears_session(self, mock_download: MagicMock, mock_session_cls: MagicMock) -> None:
        mock_download.return_value = "/tmp/wastesort_test_models/dry_wet_640.onnx"
        mgr = OnnxModelManager(_make_settings())
        mgr.load()

        mgr.shutdown()

        assert mgr.state is ModelState.UNLOADED
        with pytest.raises(ModelNotReadyError):
            mgr.get_session()


class TestProviders:
    def test_provider_building_cpu(self) -> None:
        mgr = OnnxModelManager(_make_settings(device="cpu"))
        assert mgr._providers == ["CPUExecutionProvider"]

    def test_provider_building_cuda(self) -> None:
        mgr = OnnxModelManager(_make_settings(device="cuda"))
        assert len(mgr._providers) == 2
        provider_name, provider_opts = mgr._providers[0]  # type: ignore[misc]
        assert provider_name == "CUDAExecutionProvider"
        assert provider_opts["device_id"] == 0
        assert mgr._providers[1] == "CPUExecutionProvider"

    def test_provider_building_openvino(self) -> None:
        mgr = OnnxModelManager(_make_settings(device="openvino"))
        assert len(mgr._providers) == 2
        provider_name, _provider_opts = mgr._providers[0]  # type: ignore[misc]
        assert provider_name == "OpenVINOExecutionProvider"
        assert mgr._providers[1] == "CPUExecutionProvider"
