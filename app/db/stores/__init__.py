from .base import *
from .sql_stores import *
