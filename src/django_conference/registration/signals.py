"""Signals sent by the registration services.

``order_paid`` fires once per order, inside ``PaymentService.mark_paid``
after the order is marked paid and its tickets exist. Receivers get the
``order`` and its owning ``user`` as keyword arguments.
"""

from django.dispatch import Signal

order_paid = Signal()
