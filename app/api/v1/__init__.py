from .appointment_router import *
from .payment_router import *
