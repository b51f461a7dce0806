"""Payment lifecycle and Stripe webhook reconciliation for legal consultations."""
