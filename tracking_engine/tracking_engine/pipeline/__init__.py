"""Interaction queue and batch delivery."""

from tracking_engine.pipeline.batch_processor import BatchProcessor

__all__ = ["BatchProcessor"]
