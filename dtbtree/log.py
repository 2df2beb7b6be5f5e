#/*
# * Copyright (c) 2023 Advanced Micro Devices, Inc. All Rights Reserved.
# *
# * Author:
# *       Bruce Ashfield <bruce.ashfield@amd.com>
# *
# * SPDX-License-Identifier: BSD-3-Clause
# */

import logging
import sys

logging.basicConfig( format='[%(levelname)s]: %(message)s' )
root_logger = logging.getLogger()

def init( verbose ):
    """Set the level of every registered logger from a verbosity count

    0 shows WARNING and above, 1 shows INFO and anything higher shows
    DEBUG. The root logger is kept at the same level so that modules
    without a named logger behave the same way.

    Args:
       verbose (int): the number of -v options passed

    Returns:
       Nothing
    """
    if verbose >= 2:
        level = logging.DEBUG
    elif verbose == 1:
        level = logging.INFO
    else:
        level = logging.WARNING

    loggers = logging.root.manager.loggerDict.items()
    for lname,logger in loggers:
        if type(logger) == logging.Logger:
            logger.setLevel( level )

    logging.getLogger().setLevel( level )

def _init( name ):
    """
    Initalize a logger for a given name.

    This is typically called with __name__ to intialize a logger
    for a given module.

    When called, a formatter is setup that includes the passed name
    and then the standard level and messages. Calling it twice for the
    same name does not add a second handler.

    Args:
       name (string): the logger name

    Returns:
       Nothing
    """
    if name:
        l = logging.getLogger( name )
        if l.handlers:
            return
        formatter = logging.Formatter('[%(name)s][%(levelname)s]: %(message)s' )
        ch = logging.StreamHandler()
        ch.setFormatter( formatter )
        l.addHandler( ch )
        l.propagate = False

def _log( level, message ):
    # frame 1 is _warning() & co, frame 2 is their caller
    name = sys._getframe(2).f_globals.get( '__name__' )
    if name in logging.root.manager.loggerDict:
        logger = logging.getLogger( name )
    else:
        logger = root_logger

    logger.log( level, message )

def _warning( message ):
    _log( logging.WARNING, message )

def _info( message ):
    _log( logging.INFO, message )

def _debug( message ):
    _log( logging.DEBUG, message )

def _error( message ):
    """
    Log an error against the caller's logger and exit with status 1

    This is for the command line front end only, library code raises.

    Args:
        message (string): the string to output

    Returns:
        Does not return
    """
    _log( logging.ERROR, message )
    sys.exit(1)
