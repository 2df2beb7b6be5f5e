"""
Pytest configuration and shared fixtures for dtbtree tests.
"""

import pytest

import dtbtree

import fdt_blobs


@pytest.fixture(scope="session")
def sample_dtb():
    """
    The bytes of the sample device tree blob.

    The blob is built by fdt_blobs with the same layout dtc produces:
    one memory reservation, a root with chosen, memory, four cpus and a
    soc bus holding a uart and an ethernet controller.
    """
    return fdt_blobs.sample_dtb()


@pytest.fixture(scope="session")
def sample_dtb_file(sample_dtb, tmp_path_factory):
    """
    The sample blob written to a .dtb file for the command line tests.
    """
    path = tmp_path_factory.mktemp("dtbtree_test") / "sample.dtb"
    path.write_bytes(sample_dtb)
    return path


@pytest.fixture
def sample_blob(sample_dtb):
    """
    A freshly decoded DeviceTreeBlob of the sample blob.
    """
    return dtbtree.decode(sample_dtb)


@pytest.fixture
def sample_tree(sample_blob):
    """
    A freshly built DtbTree of the sample blob.

    This is a function-scoped fixture, so each test gets a tree it can
    modify.
    """
    return sample_blob.into_tree()


@pytest.fixture
def builder():
    """
    An empty FdtBlobBuilder for writing custom structure blocks.
    """
    return fdt_blobs.FdtBlobBuilder()
