"""auth/ -- Account and authentication package for auctionhouse.

Layer rule: auth/ imports only stdlib, third-party libraries, and core/.
It does NOT import from api/ or auctions/.
api/ imports from auth/, not the other way around. The auction core sees
auth/ only through the UserDirectory protocol (UserStore.exists).
"""
