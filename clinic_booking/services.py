"""
Service wiring.

Builds the long-lived collaborators once per process (store clients,
cache, loader, notifier, coordinator, reconciler) and tears them down on
shutdown. Routers reach them through app.state.services.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from clinic_booking.config import Settings
from clinic_booking.core.booking.coordinator import BookingCoordinator
from clinic_booking.core.booking.dispatch import NotificationDispatcher
from clinic_booking.core.booking.reconciler import AppointmentReconciler
from clinic_booking.core.directory import DoctorDirectory
from clinic_booking.core.resilience.cache import Cache, CacheBackend, MemoryCacheBackend
from clinic_booking.core.resilience.read_through import ReadThroughLoader
from clinic_booking.core.resilience.retry import RetryPolicy
from clinic_booking.infra.auth import AuthClient
from clinic_booking.infra.notifications import EmailJSNotifier, Notifier
from clinic_booking.infra.postgrest import PostgrestTableStore
from clinic_booking.infra.redis import RedisCacheBackend, RedisClient, get_redis
from clinic_booking.infra.table_store import TableStore

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Everything request handlers need, built once at startup."""

    store: TableStore
    booking_store: TableStore
    cache: Cache
    loader: ReadThroughLoader
    directory: DoctorDirectory
    notifier: Notifier
    dispatcher: NotificationDispatcher
    coordinator: BookingCoordinator
    auth: AuthClient
    reconciler: Optional[AppointmentReconciler] = None

    def admin_store(self, access_token: str) -> TableStore:
        """Store acting as the given admin user."""
        if isinstance(self.store, PostgrestTableStore):
            return self.store.with_access_token(access_token)
        return self.store


async def build_cache_backend(settings: Settings) -> CacheBackend:
    if settings.cache_backend == "memory":
        return MemoryCacheBackend()

    if await get_redis() is None:
        logger.warning("Redis unavailable at startup - cache misses until it reconnects")
    return RedisCacheBackend()


async def build_services(settings: Settings) -> Services:
    """Construct the service graph from settings."""
    store = PostgrestTableStore(
        base_url=settings.rest_url,
        api_key=settings.supabase_anon_key,
        timeout=settings.store_timeout,
    )

    if settings.supabase_booking_key:
        booking_store: TableStore = PostgrestTableStore(
            base_url=settings.rest_url,
            api_key=settings.supabase_booking_key,
            timeout=settings.store_timeout,
        )
        trust_unconfirmed_inserts = False
    else:
        booking_store = store
        trust_unconfirmed_inserts = True

    cache = Cache(
        await build_cache_backend(settings),
        prefix=settings.cache_prefix,
        default_expiration=settings.cache_default_expiration,
        stale_window=settings.cache_stale_window,
    )
    loader = ReadThroughLoader(cache, RetryPolicy.from_settings())

    directory = DoctorDirectory(
        store,
        loader,
        doctors_expiration=settings.doctors_cache_expiration,
        slots_expiration=settings.slots_cache_expiration,
        horizon_days=settings.booking_horizon_days,
    )

    notifier = EmailJSNotifier(store=store)
    dispatcher = NotificationDispatcher(notifier, store)
    coordinator = BookingCoordinator(
        booking_store,
        dispatcher=dispatcher,
        cache=cache,
        trust_unconfirmed_inserts=trust_unconfirmed_inserts,
    )

    reconciler = None
    if settings.supabase_booking_key:
        reconciler = AppointmentReconciler(
            booking_store,
            grace_period=settings.reconcile_grace_period,
            interval=settings.reconcile_interval,
        )
    else:
        logger.info(
            "SUPABASE_BOOKING_KEY not set - appointment reconciliation disabled "
            "(the anon key cannot read appointments)"
        )

    return Services(
        store=store,
        booking_store=booking_store,
        cache=cache,
        loader=loader,
        directory=directory,
        notifier=notifier,
        dispatcher=dispatcher,
        coordinator=coordinator,
        auth=AuthClient(base_url=settings.auth_url, api_key=settings.supabase_anon_key),
        reconciler=reconciler,
    )


async def close_services(services: Services) -> None:
    """Flush background work and close clients."""
    if services.reconciler is not None:
        await services.reconciler.stop()

    await services.dispatcher.drain()
    await services.loader.drain()

    await services.notifier.close()
    await services.auth.close()
    if services.booking_store is not services.store:
        await services.booking_store.close()
    await services.store.close()
    await RedisClient.close()
