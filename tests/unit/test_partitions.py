"""Tests for partition naming and the archive maps."""

import pytest

from lifecycle_kernel.domain import partitions


class TestArchiveMaps:
    def test_every_dependent_partition_has_an_archive(self):
        for live in partitions.DEPENDENT_ARCHIVES:
            assert partitions.origin_of(partitions.archive_partition_for(live)) == live

    @pytest.mark.parametrize(
        "live, archive",
        [
            ("users", "usersArchive"),
            ("products", "removedProducts"),
            ("seller", "sellerArchive"),
            ("admins", "adminArchive"),
            ("toShip", "toshipArchive"),
            ("toReceive", "toreceiveArchive"),
            ("completed", "completedArchive"),
        ],
    )
    def test_known_pairs(self, live, archive):
        assert partitions.archive_partition_for(live) == archive
        assert partitions.origin_of(archive) == live

    def test_every_order_partition_is_archivable(self):
        for live in partitions.ORDER_PARTITIONS:
            assert partitions.archive_partition_for(live) in partitions.ARCHIVE_PARTITIONS

    def test_unknown_partitions(self):
        with pytest.raises(KeyError):
            partitions.archive_partition_for("sessions")
        with pytest.raises(KeyError):
            partitions.origin_of("products")

    def test_archive_and_live_partitions_are_disjoint(self):
        live = set(partitions.DEPENDENT_ARCHIVES) | {partitions.USERS, partitions.PRODUCTS}
        assert live.isdisjoint(partitions.ARCHIVE_PARTITIONS)

    def test_reserved_fields(self):
        assert partitions.RESERVED_ARCHIVE_FIELDS == {
            "archivedAt",
            "originalDocId",
            "originalCollection",
            "archivedBy",
            "archivedByRole",
            "removeId",
            "activityLogs",
            "dependents",
            "userArchiveId",
        }
