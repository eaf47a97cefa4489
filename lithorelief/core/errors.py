"""
Validation errors raised by the lithophane pipeline.

Every stage validates its inputs up front and raises one of these before any
output is produced. Hosts (CLI/GUI) are expected to turn them into a message
for the user.
"""

from __future__ import annotations


class LithoReliefError(ValueError):
    pass


class DecodeError(LithoReliefError):
    """The source image could not be decoded into RGBA pixels."""


class InvalidDimensionsError(LithoReliefError):
    """Image (or resize target) has zero/negative width or height."""


class InvalidModelSettingsError(LithoReliefError):
    """Physical model size is non-positive, or a px/mm ratio is not finite."""


class EmptyHeightmapError(LithoReliefError):
    """Heightmap length does not match the image pixel dimensions."""


class EmptyMeshError(LithoReliefError):
    """A mesh without triangles was handed to the serializer."""
