"""
IP info API: ASN and GeoIP lookups over HTTP with hot-swappable databases
"""
