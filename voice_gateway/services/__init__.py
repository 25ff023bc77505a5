"""
Services module for external integrations in the voice gateway.

- booking: The BookingService contract the scheduling backend implements,
  plus StubBookingService, used until a real backend is configured.
"""

# Services module initialization
