from .links import router as links
from .signed_urls import router as signed_urls
from .viewer import router as viewer
