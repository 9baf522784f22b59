"""
Tool handlers for the Facebook Ads catalogue.
Modules here are imported by ``load_handlers``; names starting with an
underscore are skipped.
"""
