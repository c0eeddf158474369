"""Detection package."""


def __getattr__(name: str):
    """Lazy re-export so that ``from pageredact.detection import detect``
    works without importing the merge and cache modules up front."""
    if name in ("detect", "DetectOptions"):
        from pageredact.detection import pipeline
        return getattr(pipeline, name)
    if name == "DetectorSet":
        from pageredact.detection.detectors import DetectorSet
        return DetectorSet
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
