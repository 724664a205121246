from .request_timer import *
from .logger_middleware import *
