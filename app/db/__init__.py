from .unit_of_work import *
from .db_manager import *
