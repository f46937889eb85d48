"""
Venue data providers.

Foursquare Places and Google Places clients, canonical venue mapping
and the provider facade.
"""
