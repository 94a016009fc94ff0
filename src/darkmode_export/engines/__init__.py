from .base import RenderEngine
from .pypdfium2_engine import Pypdfium2Engine

__all__ = ["Pypdfium2Engine", "RenderEngine"]
