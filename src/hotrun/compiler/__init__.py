"""
The compiler package.

Holds the per-path compilation cache and the gateway that drives the
configured source transformer and classifies its outcome.
"""

from .cache import CompilationCache, CompiledArtifact
from .gateway import Compiled, Failed, Ignored, TransformGateway
from .transform import IGNORED, TransformResult, load_transformer

__all__ = [
    'CompilationCache', 'CompiledArtifact', 'TransformGateway', 'Compiled', 'Ignored', 'Failed',
    'IGNORED', 'TransformResult', 'load_transformer',
]
