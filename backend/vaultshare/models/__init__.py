from .bundle import BundleDocument, DocumentBundle
from .document import SecureDocument
from .folder import SecureFolder
from .nda_signature import NdaSignature
from .share_link import SecureLink
from .viewer_activity import ViewerActivity

__all__ = [
    "BundleDocument",
    "DocumentBundle",
    "NdaSignature",
    "SecureDocument",
    "SecureFolder",
    "SecureLink",
    "ViewerActivity",
]
