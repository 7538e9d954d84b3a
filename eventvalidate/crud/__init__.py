from .crud_event import event
from .crud_registration import registration
from .ticket_crud import ticket
from .crud_domain_event import domain_event
from .crud_payment_notification import payment_notification
from .crud_payment_attempt import payment_attempt
