class RenderFailure(Exception):
    """Base class for every way a moon phase render can fail."""
    kind = "render_failure"

class InvalidInput(RenderFailure):
    """Texture is missing, zero-area or not an RGBA uint8 bitmap."""
    kind = "invalid_input"

class SurfaceAllocationFailure(RenderFailure):
    """Offscreen canvas or shadow surface could not be created."""
    kind = "surface_allocation_failure"

class ExtractionFailure(RenderFailure):
    """Composited canvas could not be turned into a returnable bitmap."""
    kind = "extraction_failure"

class RenderCancelled(RenderFailure):
    """Render was superseded before the shadow was composited."""
    kind = "cancelled"
