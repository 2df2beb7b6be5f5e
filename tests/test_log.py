"""
Tests for the dtbtree logging helpers.

SPDX-License-Identifier: BSD-3-Clause
"""

import logging

import pytest

import dtbtree.log


class TestLogHelpers:
    """Tests for caller logger lookup and the level helpers."""

    def test_caller_logger_is_used(self, caplog):
        logging.getLogger(__name__)

        with caplog.at_level(logging.DEBUG, logger=__name__):
            dtbtree.log._warning("reg left undecoded")
            dtbtree.log._info("11 nodes")
            dtbtree.log._debug("root node opened")

        assert [(r.name, r.levelno, r.getMessage()) for r in caplog.records] == [
            (__name__, logging.WARNING, "reg left undecoded"),
            (__name__, logging.INFO, "11 nodes"),
            (__name__, logging.DEBUG, "root node opened"),
        ]

    def test_error_exits(self, caplog):
        with pytest.raises(SystemExit) as e:
            dtbtree.log._error("bad magic")

        assert e.value.code == 1
        assert caplog.records[-1].levelno == logging.ERROR
        assert caplog.records[-1].getMessage() == "bad magic"

    @pytest.mark.parametrize(
        "verbose, level",
        [(0, logging.WARNING), (1, logging.INFO), (2, logging.DEBUG), (5, logging.DEBUG)],
    )
    def test_init_levels(self, verbose, level):
        logging.getLogger(__name__)
        dtbtree.log.init(verbose)

        assert logging.getLogger().level == level
        assert logging.getLogger(__name__).level == level

        dtbtree.log.init(0)

    def test_init_once_per_name(self):
        dtbtree.log._init("dtbtree.test_once")
        dtbtree.log._init("dtbtree.test_once")

        assert len(logging.getLogger("dtbtree.test_once").handlers) == 1
