"""
In-memory mirror of Skincrib market state.

Holds the active listing set with its aggregates and the per-account
deposit/withdraw order books. All mutation happens on the client's single
event-delivery path, so no locking is done here.

Aggregates are maintained incrementally: additions raise max_price and add
to total_value, removals subtract from total_value and recompute max_price
only when the removed listing held the maximum. A wholesale replacement
recomputes both from scratch.
"""

import logging
from typing import Dict, Iterable, List, Optional, Tuple

from .models import ClientListings, Listing, ListingType, ListingUpdate, MarketStats

logger = logging.getLogger(__name__)

LISTING_TYPES: Tuple[ListingType, ...] = ("deposit", "withdraw")


class MarketMirror:
    """
    Local snapshot of active listings and account order books.

    Order books are indexed by (type, listing key) -> owning account so
    status updates resolve without scanning every account.
    """

    def __init__(self):
        self._listings: Dict[str, Listing] = {}
        self.stats = MarketStats()

        # type -> steamid -> listing key -> Listing
        self._books: Dict[str, Dict[str, Dict[str, Listing]]] = {t: {} for t in LISTING_TYPES}
        # (type, listing key) -> steamid
        self._owners: Dict[Tuple[str, str], str] = {}

    # ============ Active listings ============

    @property
    def listings(self) -> List[Listing]:
        return list(self._listings.values())

    def __len__(self) -> int:
        return len(self._listings)

    def __contains__(self, key: str) -> bool:
        return key in self._listings

    def get_listing(self, key: str) -> Optional[Listing]:
        return self._listings.get(key)

    def add_listing(self, listing: Listing) -> None:
        """Add a listing to the active set, replacing any listing with the same key."""
        previous = self._listings.pop(listing.key, None)
        if previous is not None:
            logger.debug(f"Replacing duplicate listing {listing.key}")
            self._discount(previous)

        self._listings[listing.key] = listing
        self.stats.total_value += listing.price
        if listing.price > self.stats.max_price:
            self.stats.max_price = listing.price

    def remove_listing(self, key: str) -> Optional[Listing]:
        """
        Remove a listing by key.

        Returns the removed listing, or None if it was not active. Removing
        an unknown key leaves state untouched.
        """
        listing = self._listings.pop(key, None)
        if listing is None:
            # Older payloads may only carry the assetid of a listing keyed by id
            for candidate in self._listings.values():
                if candidate.matches(key):
                    listing = self._listings.pop(candidate.key)
                    break
        if listing is None:
            return None

        self._discount(listing)
        return listing

    def replace_listings(self, listings: Iterable[Listing]) -> None:
        """Replace the active set wholesale and recompute aggregates."""
        self._listings = {x.key: x for x in listings}
        self.recompute_stats()
        logger.info(f"Market resynced: {len(self._listings)} listings, max={self.stats.max_price}")

    def recompute_stats(self) -> MarketStats:
        prices = [x.price for x in self._listings.values()]
        self.stats.max_price = max(prices, default=0)
        self.stats.total_value = sum(prices)
        return self.stats

    def _discount(self, listing: Listing) -> None:
        self.stats.total_value -= listing.price
        if listing.price == self.stats.max_price:
            self.stats.max_price = max((x.price for x in self._listings.values()), default=0)

    # ============ Account order books ============

    def get_client_listings(self, listing_type: ListingType, steamid: str) -> Optional[List[Listing]]:
        """Listings of one account, or None if that account was never loaded."""
        book = self._books[listing_type].get(steamid)
        return list(book.values()) if book is not None else None

    def get_client_deposits(self, steamid: str) -> Optional[List[Listing]]:
        return self.get_client_listings("deposit", steamid)

    def get_client_withdraws(self, steamid: str) -> Optional[List[Listing]]:
        return self.get_client_listings("withdraw", steamid)

    def set_client_listings(self, steamid: str, client_listings: ClientListings) -> None:
        """Replace both order books of an account."""
        for listing_type, listings in (("deposit", client_listings.deposits),
                                       ("withdraw", client_listings.withdraws)):
            for key in list(self._books[listing_type].get(steamid, {})):
                self._owners.pop((listing_type, key), None)
            self._books[listing_type][steamid] = {}
            self.add_client_listings(listing_type, steamid, listings)

    def add_client_listings(self, listing_type: ListingType, steamid: str,
                            listings: Iterable[Listing]) -> None:
        book = self._books[listing_type].setdefault(steamid, {})
        for listing in listings:
            previous_owner = self._owners.get((listing_type, listing.key))
            if previous_owner is not None and previous_owner != steamid:
                logger.warning(
                    f"Listing {listing.key} moved from account {previous_owner} to {steamid}"
                )
                self._books[listing_type][previous_owner].pop(listing.key, None)
            book[listing.key] = listing
            self._owners[(listing_type, listing.key)] = steamid

    def remove_client_listings(self, listing_type: ListingType, steamid: str,
                               keys: Iterable[str]) -> List[Listing]:
        """
        Remove listings from an account's book.

        Keys not present are skipped. Returns the listings actually removed.
        """
        book = self._books[listing_type].get(steamid)
        if book is None:
            return []

        removed = []
        for key in keys:
            listing = book.pop(key, None)
            if listing is None:
                continue
            self._owners.pop((listing_type, key), None)
            removed.append(listing)
        return removed

    def find_client_listing(self, listing_type: Optional[ListingType],
                            key: str) -> Optional[Tuple[ListingType, str, Listing]]:
        """
        Locate a listing in the order books.

        Returns (type, steamid, listing), or None. Without a type both books
        are searched, deposits first.
        """
        types = (listing_type,) if listing_type else LISTING_TYPES
        for t in types:
            steamid = self._owners.get((t, key))
            if steamid is not None:
                return t, steamid, self._books[t][steamid][key]
        return None

    def update_client_listing(self, update: ListingUpdate) -> Optional[Tuple[str, Listing]]:
        """
        Merge a status update into the stored order-book listing.

        Fields absent from the update (price, item details) keep their
        stored values. Returns (steamid, merged listing), or None if the
        listing is in no book.
        """
        found = self.find_client_listing(update.type, update.key)
        if found is None:
            return None

        listing_type, steamid, stored = found
        merged = stored.model_copy(update=update.changes())
        self._books[listing_type][steamid][stored.key] = merged
        return steamid, merged
