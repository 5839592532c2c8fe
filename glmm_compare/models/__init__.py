"""Model fitting backends."""

from .base import BaseBackend, ModelSpec
from .bayes_mixed import BayesMixedGLMBackend
from .glm import GEEBackend, GLMBackend
from .glmer import GlmerBackend

__all__ = [
    "BaseBackend",
    "BayesMixedGLMBackend",
    "GEEBackend",
    "GLMBackend",
    "GlmerBackend",
    "ModelSpec",
]
