"""
Skincrib merchant client: request/response operations plus a live market mirror.

Usage:
    client = MerchantClient(api_key="...")
    client.on("listing.added", on_listing)

    async with client:
        await client.authenticate()
        listings = await client.fetch_all_active_listings()
"""

import asyncio
import logging
from typing import Any, Callable, Dict, Iterable, List, Optional, Set

from pydantic import ValidationError as PydanticValidationError

from .config import MerchantConfig
from .errors import (
    AuthenticationError,
    NotAuthenticatedError,
    RemoteOperationError,
    RequestTimeoutError,
    ValidationError,
    error_message,
)
from .events import NotificationType, Notifier
from .market import MarketMirror
from .models import (
    ClientListings,
    ConnectionStatus,
    Listing,
    ListingItem,
    ListingRemoval,
    ListingUpdate,
    MarketStats,
)
from .transport import SocketTransport

logger = logging.getLogger(__name__)


# Push events consumed
PUSH_LISTING_NEW = "p2p:listings:new"
PUSH_LISTING_REMOVED = "p2p:listings:removed"
PUSH_LISTING_STATUS = "p2p:listings:status"

# Requests produced
REQUEST_AUTHENTICATE = "authenticate"
REQUEST_LOAD_INVENTORY = "user:loadInventory"
REQUEST_LIST_LISTINGS = "p2p:listings:get"
REQUEST_CLIENT_LISTINGS = "p2p:listings:client"
REQUEST_CREATE_LISTINGS = "p2p:listings:new"
REQUEST_CANCEL_LISTINGS = "p2p:listings:cancel"
REQUEST_PURCHASE_LISTING = "p2p:listings:purchase"
REQUEST_CONFIRM_LISTING = "p2p:listings:confirm"


def _require(value: Any, message: str) -> None:
    if not value:
        raise ValidationError(message)


class MerchantClient:
    """
    Client for the Skincrib merchant socket API.

    Keeps an in-memory mirror of active listings and of the deposits and
    withdraws of every account it has seen (when memory is enabled), and
    forwards push events to subscribers as notifications.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        reconnect: bool = True,
        memory: bool = True,
        config: Optional[MerchantConfig] = None,
        transport: Optional[SocketTransport] = None,
    ):
        """
        Args:
            api_key: Merchant API key (ignored when config is given)
            reconnect: Re-authenticate automatically after a disconnect
            memory: Store listings and client deposits/withdraws in memory
            config: Full configuration; overrides the arguments above
            transport: Transport to use instead of building a SocketTransport
        """
        self.config = config or MerchantConfig(api_key=api_key, reconnect=reconnect, memory=memory)
        self.key = self.config.api_key
        self.reconnect = self.config.reconnect
        self.memory = self.config.memory

        self.authenticated = False
        self.last_error: Optional[str] = None

        self.market = MarketMirror()
        self.notifier = Notifier()
        self.transport = transport or SocketTransport(
            self.config.url,
            namespace=self.config.namespace,
            request_timeout=self.config.request_timeout,
        )

        self._background_tasks: Set[asyncio.Task] = set()
        # Set by a disconnect; consumed by the next connect
        self._reauth_pending = False

        self.transport.on("connect", self._on_connected)
        self.transport.on("disconnect", self._on_disconnected)
        self.transport.on("error", self._on_error)
        self.transport.on("connect_error", self._on_error)
        self.transport.on(PUSH_LISTING_NEW, self._on_listing_added)
        self.transport.on(PUSH_LISTING_REMOVED, self._on_listing_removed)
        self.transport.on(PUSH_LISTING_STATUS, self._on_listing_status)

        logger.info(f"Initialized Skincrib merchant client: {self.config!r}")

    @classmethod
    def from_env(cls, transport: Optional[SocketTransport] = None) -> 'MerchantClient':
        """Create a client from SKINCRIB_* environment variables."""
        return cls(config=MerchantConfig.from_env(), transport=transport)

    # ============ Lifecycle ============

    async def start(self) -> None:
        """Connect the socket."""
        self._reauth_pending = False
        await self.transport.connect()

    async def stop(self) -> None:
        """Disconnect the socket and cancel pending re-authentication."""
        for task in list(self._background_tasks):
            task.cancel()
        await self.transport.disconnect()
        self._reauth_pending = False
        self.authenticated = False

    async def __aenter__(self) -> 'MerchantClient':
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    def on(self, notification, callback: Callable) -> None:
        """Subscribe to a notification ("listing.added", NotificationType.ERROR, ...)."""
        self.notifier.subscribe(notification, callback)

    def off(self, notification, callback: Callable) -> None:
        self.notifier.unsubscribe(notification, callback)

    # ============ Read accessors ============

    @property
    def listings(self) -> List[Listing]:
        """Active listings held in memory."""
        return self.market.listings

    @property
    def stats(self) -> MarketStats:
        return self.market.stats

    @property
    def market_value(self) -> float:
        """Total value of active listings, in dollars."""
        return self.market.stats.total_value_dollars

    @property
    def market_max(self) -> float:
        """Highest active listing price, in dollars."""
        return self.market.stats.max_price_dollars

    @property
    def status(self) -> ConnectionStatus:
        return ConnectionStatus(
            connected=self.transport.connected,
            authenticated=self.authenticated,
            error_message=self.last_error,
        )

    def get_client_deposits(self, steamid: str) -> Optional[List[Listing]]:
        return self.market.get_client_deposits(steamid)

    def get_client_withdraws(self, steamid: str) -> Optional[List[Listing]]:
        return self.market.get_client_withdraws(steamid)

    # ============ Connection events ============

    def _on_connected(self) -> None:
        logger.info("Connected to Skincrib websocket server")
        if self._reauth_pending and self.reconnect:
            self._reauth_pending = False
            self._schedule_reauthentication()
        self.notifier.emit(NotificationType.CONNECTED, "Connected to Skincrib websocket server.")

    def _on_disconnected(self, *args) -> None:
        logger.warning("Disconnected from Skincrib websocket server")
        self.authenticated = False
        # Re-authenticate on the next connect, however long the outage lasts
        self._reauth_pending = self.reconnect
        self.notifier.emit(NotificationType.DISCONNECTED, "Disconnected from Skincrib websocket server.")

    def _on_error(self, error: Any = None) -> None:
        message = error_message(error)
        self.last_error = message
        logger.error(f"Skincrib socket error: {message}")
        self.notifier.emit(NotificationType.ERROR, message)

    def _schedule_reauthentication(self) -> None:
        """Re-authenticate in the background after the socket is back."""
        try:
            task = asyncio.get_running_loop().create_task(self.authenticate())
        except RuntimeError:
            logger.warning("No running event loop; skipping re-authentication")
            return
        self._background_tasks.add(task)
        task.add_done_callback(self._on_reauthentication_done)

    def _on_reauthentication_done(self, task: asyncio.Task) -> None:
        self._background_tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Re-authentication failed: {error}")
            self._on_error(error)
        else:
            logger.info("Re-authenticated after disconnect")

    # ============ Market push events ============

    def _on_listing_added(self, payload: Dict[str, Any]) -> None:
        try:
            listing = Listing.model_validate(payload)
        except PydanticValidationError as e:
            logger.warning(f"Dropping malformed listing push: {e}")
            return

        if self.memory:
            self.market.add_listing(listing)
            logger.debug(f"Listing added: {listing.key} at {listing.price}")

        self.notifier.emit(NotificationType.LISTING_ADDED, listing)

    def _on_listing_removed(self, payload: Any) -> None:
        if not isinstance(payload, dict):
            payload = {"id": payload}
        try:
            removal = ListingRemoval.model_validate(payload)
        except PydanticValidationError as e:
            logger.warning(f"Dropping malformed removal push: {e}")
            return

        if self.memory:
            listing = self.market.remove_listing(removal.key)
            if listing is not None:
                logger.debug(f"Listing removed: {listing.key}")
                self.notifier.emit(NotificationType.LISTING_REMOVED, listing)
                return
            logger.debug(f"Removal for unknown listing {removal.key}")

        self.notifier.emit(NotificationType.LISTING_REMOVED, removal)

    def _on_listing_status(self, payload: Dict[str, Any]) -> None:
        try:
            update = ListingUpdate.model_validate(payload)
        except PydanticValidationError as e:
            logger.warning(f"Dropping malformed status push: {e}")
            return

        if self.memory:
            found = self.market.update_client_listing(update)
            if found is not None:
                steamid, listing = found
                logger.debug(f"Listing {listing.key} of {steamid} is now {listing.status}")
                self.notifier.emit(
                    NotificationType.LISTING_UPDATED,
                    listing.model_copy(update={"steamid": steamid}),
                )
                return

        self.notifier.emit(NotificationType.LISTING_UPDATED, update)

    # ============ Requests ============

    def _require_authenticated(self) -> None:
        if not self.authenticated:
            raise NotAuthenticatedError()

    async def authenticate(self) -> Any:
        """
        Authenticate to the merchant socket with the API key.

        Returns:
            Response data from the server

        Raises:
            AuthenticationError: the server rejected the key
        """
        try:
            response = await self.transport.call(REQUEST_AUTHENTICATE, {"key": self.key})
        except RequestTimeoutError:
            raise
        except RemoteOperationError as e:
            logger.error(f"Authentication failed: {e.message}")
            raise AuthenticationError(e.message) from e

        self.authenticated = True
        logger.info("Authenticated to Skincrib merchant socket")
        self.notifier.emit(NotificationType.AUTHENTICATED, "Connected to merchant socket.")
        return response.data

    async def load_inventory(self, steamid: str) -> List[Dict[str, Any]]:
        """Load a client's CS:GO inventory."""
        self._require_authenticated()
        _require(steamid, "Provide a client's SteamID64.")

        response = await self.transport.call(REQUEST_LOAD_INVENTORY, {"steamid": steamid})
        data = response.data or {}
        return data.get("inventory", []) if isinstance(data, dict) else data

    async def fetch_all_active_listings(self) -> List[Listing]:
        """
        Fetch every active listing on the market.

        With memory enabled the local listing set is replaced wholesale.
        """
        self._require_authenticated()

        response = await self.transport.call(REQUEST_LIST_LISTINGS, {})
        listings = self._parse_listings(response.data)

        if self.memory:
            self.market.replace_listings(listings)

        return listings

    async def fetch_account_active_listings(self, steamid: str) -> ClientListings:
        """Fetch a client's active deposits and withdraws."""
        self._require_authenticated()
        _require(steamid, "Provide a client's SteamID64.")

        response = await self.transport.call(REQUEST_CLIENT_LISTINGS, {"steamid": steamid})
        try:
            client_listings = ClientListings.from_payload(response.data)
        except PydanticValidationError as e:
            raise RemoteOperationError(f"Malformed client listings: {e}", event=REQUEST_CLIENT_LISTINGS) from e

        if self.memory:
            self.market.set_client_listings(steamid, client_listings)

        return client_listings

    async def create_listings(
        self,
        steamid: str,
        api_key: str,
        trade_url: str,
        items: Iterable[Any],
    ) -> List[Listing]:
        """
        List client items on the market.

        Args:
            steamid: Client SteamID64
            api_key: Client Steam API key
            trade_url: Client Steam trade URL
            items: Items with at least assetid, price and percentIncrease

        Returns:
            The created listings
        """
        self._require_authenticated()
        _require(steamid, "Provide a client's SteamID64.")
        _require(api_key, "Provide a client's Steam api-key.")
        _require(trade_url, "Provide a client's Steam tradeurl.")
        items = self._validate_items(items)

        response = await self.transport.call(REQUEST_CREATE_LISTINGS, {
            "steamid": steamid,
            "apiKey": api_key,
            "tradeUrl": trade_url,
            "items": [x.to_payload() for x in items],
        })
        listings = self._parse_listings(response.data)

        if self.memory:
            self.market.add_client_listings("deposit", steamid, listings)

        logger.info(f"Created {len(listings)} listing(s) for {steamid}")
        return listings

    async def cancel_listings(self, steamid: str, ids: Iterable[str]) -> Any:
        """
        Cancel active listings of a client.

        Ids not present in the local deposit list are skipped.
        """
        self._require_authenticated()
        _require(steamid, "Provide a client's SteamID64.")
        if ids is None or isinstance(ids, str):
            raise ValidationError("Provide a list of at least one listing id to cancel.")
        try:
            ids = [str(x) for x in ids if x is not None and x != ""]
        except TypeError as e:
            raise ValidationError("Provide a list of at least one listing id to cancel.") from e
        _require(ids, "Provide a list of at least one listing id to cancel.")

        response = await self.transport.call(REQUEST_CANCEL_LISTINGS, {"steamid": steamid, "ids": ids})

        if self.memory:
            removed = self.market.remove_client_listings("deposit", steamid, ids)
            logger.info(f"Cancelled {len(removed)} of {len(ids)} local listing(s) for {steamid}")

        return response.data

    async def purchase_listing(self, steamid: str, trade_url: str, listing_id: str) -> Optional[Listing]:
        """Purchase a listing for a client; trade_url routes the trade offer."""
        self._require_authenticated()
        _require(steamid, "Provide a client's SteamID64.")
        _require(trade_url, "Provide a client's Steam tradeurl.")
        _require(listing_id, "Provide the id of the listing you want to purchase.")

        response = await self.transport.call(REQUEST_PURCHASE_LISTING, {
            "steamid": steamid,
            "tradeUrl": trade_url,
            "id": str(listing_id),
        })
        if not response.data:
            return None

        try:
            listing = Listing.model_validate(response.data)
        except PydanticValidationError as e:
            raise RemoteOperationError(f"Malformed purchase response: {e}", event=REQUEST_PURCHASE_LISTING) from e

        if self.memory:
            self.market.add_client_listings("withdraw", steamid, [listing])

        return listing

    async def confirm_listing(self, steamid: str, listing_id: str) -> Optional[str]:
        """Confirm the seller is ready to send a sold item; returns the server message."""
        self._require_authenticated()
        _require(steamid, "Provide a client's SteamID64.")
        _require(listing_id, "Provide the id of the listing you want to confirm.")

        response = await self.transport.call(REQUEST_CONFIRM_LISTING, {
            "steamid": steamid,
            "id": str(listing_id),
        })
        return response.message

    # ============ Helpers ============

    @staticmethod
    def _validate_items(items: Iterable[Any]) -> List[ListingItem]:
        if items is None or isinstance(items, (str, dict)):
            raise ValidationError("Provide a list of at least one item object to list.")
        try:
            items = list(items)
        except TypeError as e:
            raise ValidationError("Provide a list of at least one item object to list.") from e
        _require(items, "Provide a list of at least one item object to list.")

        validated = []
        for i, item in enumerate(items):
            if isinstance(item, ListingItem):
                validated.append(item)
                continue
            try:
                validated.append(ListingItem.model_validate(item))
            except PydanticValidationError as e:
                raise ValidationError(
                    f"Item object index {i} should contain a minimum of: assetid, price, percentIncrease. ({e.error_count()} error(s))"
                ) from e
        return validated

    @staticmethod
    def _parse_listings(data: Any) -> List[Listing]:
        if data is None:
            return []
        if isinstance(data, dict):
            data = [data]
        try:
            return [Listing.model_validate(x) for x in data]
        except PydanticValidationError as e:
            raise RemoteOperationError(f"Malformed listings in response: {e}") from e

