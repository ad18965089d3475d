from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Callable, Optional

import torch

from ..exceptions import InferenceError, ModelLoadError, ShapeMismatchError
from ..processing.pipeline import FeatureMatrix

logger = logging.getLogger(__name__)


ModelLoader = Callable[[Path, torch.device], Any]


def load_torchscript(path: Path, device: torch.device) -> Any:
    return torch.jit.load(str(path), map_location=device)


class SimilarityEngine:
    """Siamese comparison of an enrolled window against a fresh capture.

    The model artifact takes two ``(1, rows, 6)`` float32 tensors and returns
    a single scalar. The score is returned in the model's native range; turning
    it into an accept/reject decision is left to the caller.

    Every call loads the artifact, runs exactly one comparison and releases
    it. Nothing is cached between calls.
    """

    def __init__(
        self,
        model_path: Path,
        *,
        window_rows: int = 200,
        device: str = "cpu",
        loader: Optional[ModelLoader] = None,
    ) -> None:
        self.model_path = Path(model_path)
        self.window_rows = int(window_rows)
        self._device_name = device
        self._loader = loader or load_torchscript

    def _device(self) -> torch.device:
        if self._device_name.startswith("cuda") and not torch.cuda.is_available():
            return torch.device("cpu")
        return torch.device(self._device_name)

    def _validate(self, matrix: FeatureMatrix, label: str) -> None:
        if not isinstance(matrix, FeatureMatrix):
            raise ShapeMismatchError(f"{label} input is not a feature matrix: {type(matrix).__name__}")
        try:
            matrix.require_rows(self.window_rows)
        except ShapeMismatchError as exc:
            raise ShapeMismatchError(f"{label}: {exc}") from exc

    def _load_model(self, device: torch.device) -> Any:
        if not self.model_path.exists():
            raise ModelLoadError(f"Missing model artifact: {self.model_path}")
        try:
            model = self._loader(self.model_path, device)
        except Exception as exc:
            raise ModelLoadError(f"Failed to load model {self.model_path}: {exc}") from exc
        if hasattr(model, "eval"):
            model = model.eval()
        return model

    def _run(self, enrolled: FeatureMatrix, candidate: FeatureMatrix) -> float:
        device = self._device()
        model = self._load_model(device)
        try:
            enrolled_ts = torch.from_numpy(enrolled.to_model_input()).to(device=device, dtype=torch.float32)
            candidate_ts = torch.from_numpy(candidate.to_model_input()).to(device=device, dtype=torch.float32)
            try:
                with torch.no_grad():
                    output = model(enrolled_ts, candidate_ts)
            except Exception as exc:
                raise InferenceError(f"Model forward failed: {exc}") from exc

            if isinstance(output, (tuple, list)):
                output = output[0]
            flat = torch.as_tensor(output).detach().to("cpu").reshape(-1)
            if flat.numel() < 1:
                raise InferenceError("Model returned an empty output")
            return float(flat[0].item())
        finally:
            del model

    def compare_sync(self, enrolled: FeatureMatrix, candidate: FeatureMatrix) -> float:
        self._validate(enrolled, "enrolled")
        self._validate(candidate, "candidate")
        score = self._run(enrolled, candidate)
        logger.info("Similarity output: %.6f", score)
        return score

    async def compare(self, enrolled: FeatureMatrix, candidate: FeatureMatrix) -> float:
        self._validate(enrolled, "enrolled")
        self._validate(candidate, "candidate")
        score = await asyncio.to_thread(self._run, enrolled, candidate)
        logger.info("Similarity output: %.6f", score)
        return score
