from streamscope.config import VERSION

__version__ = VERSION
