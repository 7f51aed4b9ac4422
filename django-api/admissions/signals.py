"""Django signals for cache invalidation.

Ticket rows edited through the admin (quantity, sales window, visibility)
change what the availability endpoint reports.
"""

from django.db.models.signals import post_delete, post_save
from django.dispatch import receiver

from admissions import cache as admissions_cache
from admissions.models import Ticket


@receiver([post_save, post_delete], sender=Ticket)
def invalidate_ticket_cache(sender, instance, **kwargs):
    """Invalidate the availability cache when a ticket is saved or deleted."""
    admissions_cache.invalidate_ticket(str(instance.pk))
