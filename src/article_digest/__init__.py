"""Extract web articles and derive summaries, translations, posts and illustrations."""

__all__ = ["config", "extractor", "images", "models", "pipeline", "service", "tasks"]
