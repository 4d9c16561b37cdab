import time
from typing import Callable, List, Sequence, Union

from asset_importer.pipeline.batching import gather_batch
from asset_importer.providers.base import AssetProvider
from asset_importer.schemas import InFlightItem, MediaDescriptor, MediaResult
from asset_importer.utils.logging import get_logger


logger = get_logger(__name__)


async def _create_one(
    provider: AssetProvider,
    index: int,
    descriptor: MediaDescriptor,
    clock: Callable[[], float],
    isolate_failures: bool,
) -> Union[InFlightItem, MediaResult]:
    # Start time is taken when the call is issued, so ``seconds`` covers creation + processing.
    start_time = clock()
    try:
        handle = await provider.create_asset(descriptor)
    except Exception as exc:  # noqa: BLE001
        if not isolate_failures:
            raise
        logger.warning("createAsset failed for %s: %s", descriptor.url, exc)
        return MediaResult(
            assetId=None,
            success=False,
            errorMessage=str(exc) or exc.__class__.__name__,
            seconds=clock() - start_time,
            source=descriptor,
        )
    return InFlightItem(index=index, handle=handle, source=descriptor, start_time=start_time)


async def upload_batch(
    provider: AssetProvider,
    batch: Sequence[MediaDescriptor],
    offset: int = 0,
    clock: Callable[[], float] = time.time,
    isolate_failures: bool = False,
) -> List[Union[InFlightItem, MediaResult]]:
    """Create every asset of ``batch`` concurrently and wait for all of them.

    Output order matches ``batch``. Without ``isolate_failures`` the first
    creation error propagates and the batch is abandoned; with it, failed
    creations come back as unsuccessful ``MediaResult`` entries in place.
    """
    return await gather_batch(
        _create_one(provider, offset + i, descriptor, clock, isolate_failures)
        for i, descriptor in enumerate(batch)
    )
