"""RSVPs to a CSV file, with an email to the hosts on every change."""

__version__ = '0.1.0'
