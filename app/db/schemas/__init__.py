from .doctor_schema import *
from .appointment_schemas import *
from .payment_schemas import *
