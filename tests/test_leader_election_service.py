import asyncio

from adapters.external.memory.leader_lease_repository_memory import LeaderLeaseRepositoryMemory
from core.services.leader_election_service import LeaderElectionService


def test_single_holder_and_takeover_after_expiry():
    async def scenario():
        leases = LeaderLeaseRepositoryMemory()
        a = LeaderElectionService(lease_repo=leases, holder_id="a", ttl_s=5)
        b = LeaderElectionService(lease_repo=leases, holder_id="b", ttl_s=5)

        assert await a.ensure(100)
        assert not await b.ensure(101)
        # Renewal keeps the lease alive.
        assert await a.ensure(104)
        assert not await b.ensure(108)

        # a stops renewing; once the lease runs out b takes over.
        assert await b.ensure(109)
        assert b.is_leader
        assert not await a.ensure(110)
        assert not a.is_leader

    asyncio.run(scenario())


def test_release_hands_over_immediately():
    async def scenario():
        leases = LeaderLeaseRepositoryMemory()
        a = LeaderElectionService(lease_repo=leases, holder_id="a", ttl_s=30)
        b = LeaderElectionService(lease_repo=leases, holder_id="b", ttl_s=30)

        assert await a.ensure(100)
        await a.release()
        assert not a.is_leader
        assert await b.ensure(101)
        assert (await leases.get("candle-generator")).holder_id == "b"

    asyncio.run(scenario())
