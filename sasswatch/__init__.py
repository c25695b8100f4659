"""sasswatch: stylesheet compiler front-end with an import-graph aware watch mode."""

import logging

__version__ = "0.3.0"

logging.getLogger(__name__).addHandler(logging.NullHandler())
