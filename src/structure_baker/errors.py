"""
Exception hierarchy for structure baking.

Fatal errors (a malformed catalog) abort a conversion. Recoverable errors
are raised at the narrowest scope (face, element, block group) and caught
right there by the caller, which records them in the DegradationLog.
"""


class StructureBakerError(Exception):
    """Base class for all errors raised by this package."""


class LoadError(StructureBakerError):
    """A definition table or structure file is missing or not well-formed."""


class CyclicModelError(StructureBakerError):
    """A model parent chain refers back to itself."""

    def __init__(self, chain):
        self.chain = list(chain)
        super().__init__("Cyclic model inheritance: " + " -> ".join(self.chain))


class UnresolvedTextureError(StructureBakerError):
    """A #slot reference cannot be dereferenced to a literal texture path."""

    def __init__(self, reference: str, reason: str = "dangling reference"):
        self.reference = reference
        self.reason = reason
        super().__init__(f"Cannot resolve texture {reference!r}: {reason}")


class ModelNotFoundError(StructureBakerError):
    """No model definition exists for a block type."""

    def __init__(self, block_type: str, model_name: str):
        self.block_type = block_type
        self.model_name = model_name
        super().__init__(f"No model {model_name!r} for block {block_type!r}")


class MalformedElementError(StructureBakerError, ValueError):
    """A cube element has unusable coordinates."""
