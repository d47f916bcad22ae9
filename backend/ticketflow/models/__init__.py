from ticketflow.models.ticket import Ticket, TicketSequence
from ticketflow.models.activity import TicketActivity
from ticketflow.models.attachment import TicketAttachment
from ticketflow.models.api_key import ApiKey

__all__ = ["Ticket", "TicketSequence", "TicketActivity", "TicketAttachment", "ApiKey"]
