from .pipeline import IngestionPipeline, IngestionStats, to_document, to_points

__all__ = ["IngestionPipeline", "IngestionStats", "to_document", "to_points"]
