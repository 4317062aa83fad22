"""Bar inventory service: stock by location, purchase orders and history exports."""
from __future__ import annotations

__version__ = "0.1.0"
