from .state_machine import *
from .side_effects import *
from .notification_templates import *
from .reconciliation_engine import *
