"""Services domain - the bookable services offered by the provider"""

__all__ = []
