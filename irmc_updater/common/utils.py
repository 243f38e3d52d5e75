# Copyright 2010 United States Government as represented by the
# Administrator of the National Aeronautics and Space Administration.
# Copyright 2011 Justin Santa Barbara
# All Rights Reserved.
#
#    Licensed under the Apache License, Version 2.0 (the "License"); you may
#    not use this file except in compliance with the License. You may obtain
#    a copy of the License at
#
#         http://www.apache.org/licenses/LICENSE-2.0
#
#    Unless required by applicable law or agreed to in writing, software
#    distributed under the License is distributed on an "AS IS" BASIS, WITHOUT
#    WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied. See the
#    License for the specific language governing permissions and limitations
#    under the License.

"""Utilities and helper functions."""

import contextlib

from oslo_concurrency import lockutils
from oslo_log import log as logging
from oslo_utils import timeutils

LOG = logging.getLogger(__name__)


def target_lock_name(address, operation):
    """Name of the lock serializing an operation on one iRMC."""
    return '%s-%s' % (address, operation)


@contextlib.contextmanager
def target_lock(address, operation):
    """Serialize an operation against a single iRMC.

    The lock is held for the whole ``with`` block and released on every
    exit path, including exceptions.

    :param address: the Redfish address of the iRMC.
    :param operation: name of the operation, e.g. ``online-update``.
    """
    name = target_lock_name(address, operation)
    timer = timeutils.StopWatch().start()
    LOG.debug('Attempting to get lock %s', name)
    with lockutils.lock(name):
        LOG.debug('Lock %(name)s acquired after %(time).2f seconds',
                  {'name': name, 'time': timer.elapsed()})
        timer.restart()
        try:
            yield
        finally:
            LOG.debug('Releasing lock %(name)s held for %(time).2f seconds',
                      {'name': name, 'time': timer.elapsed()})
