from .base_stage import BaseStage, run_with_retry

__all__ = ["BaseStage", "run_with_retry"]
