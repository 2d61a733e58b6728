"""
Feature services over the document models. Each module maps to one area of
the app: profiles, feed, interactions, follows, stores, cart, orders,
payments and checkout.
"""
