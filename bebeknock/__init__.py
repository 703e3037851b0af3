"""BebeKnock: baby activity tracking API."""
