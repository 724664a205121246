from .db_base_model import *
from .user_table import *
from .family_member_table import *
from .doctor_table import *
from .appointment_table import *
from .payment_table import *
from .notification_table import *
