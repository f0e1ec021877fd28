"""Condominium billing computation and payment allocation engine."""
