"""
Annotator models: capabilities, artifact transfer, decoding and the model store
"""
from .base import (
    ArtifactKey,
    EntityCategory,
    EntityFinder,
    SentenceModel,
    TaggerModel,
    TokenizerModel,
)
from .artifacts import (
    DirectoryRemoteArtifacts,
    HttpRemoteArtifacts,
    LocalArtifactCache,
    RemoteArtifacts,
    create_remote_artifacts,
)
from .codecs import decode_model
from .store import ModelStore

__all__ = [
    'ArtifactKey',
    'EntityCategory',
    'EntityFinder',
    'SentenceModel',
    'TaggerModel',
    'TokenizerModel',
    'DirectoryRemoteArtifacts',
    'HttpRemoteArtifacts',
    'LocalArtifactCache',
    'RemoteArtifacts',
    'create_remote_artifacts',
    'decode_model',
    'ModelStore',
]
