from .user import User
from .submission import Submission
from .delivery import Delivery
# base is imported by the above as needed
