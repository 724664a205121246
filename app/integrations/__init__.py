from .gateway_client import *
from .meeting_provisioner import *
from .notifier import *
