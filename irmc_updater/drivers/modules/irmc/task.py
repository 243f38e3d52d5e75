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

"""
Polling of asynchronous iRMC Redfish tasks.
"""

from oslo_log import log as logging
import tenacity

from irmc_updater.common import exception
from irmc_updater.common.i18n import _
from irmc_updater.conf import CONF
from irmc_updater.drivers.modules.redfish import utils as redfish_utils

LOG = logging.getLogger(__name__)

TASK_STATE_COMPLETED = 'Completed'
TERMINAL_TASK_STATES = frozenset([TASK_STATE_COMPLETED, 'Exception',
                                  'Killed', 'Cancelled'])
TASK_STATUS_CRITICAL = 'Critical'

_TASK_LOG_PATH = '%(task)s/Oem/%(oem)s/TaskLog'


def _get_task(conn, task_location):
    response = redfish_utils.get(conn, task_location)
    task = redfish_utils.decode_json(response, task_location)
    if not isinstance(task, dict):
        raise exception.RedfishDecodeError(
            url=task_location,
            error=_('expected a Task resource, got %s') % task)
    return task


def _is_running(task):
    return task.get('TaskState') not in TERMINAL_TASK_STATES


def wait_for_task_end(conn, task_location, timeout):
    """Poll a Redfish task until it ends.

    :param conn: a ``sushy.Sushy`` connection.
    :param task_location: URI of the task, as returned in the ``Location``
        header of the request that started it.
    :param timeout: wall-clock deadline (in seconds) from the first poll.
    :returns: True if the task completed successfully, False if it ended
        in any other terminal state.
    :raises: RedfishTaskTimeout if the deadline passes first.
    :raises: RedfishError or RedfishConnectionError if a poll fails.
    """
    @tenacity.retry(
        retry=tenacity.retry_if_result(_is_running),
        stop=tenacity.stop_after_delay(timeout),
        wait=tenacity.wait_fixed(
            CONF.irmc.online_update_task_poll_interval))
    def _poll():
        task = _get_task(conn, task_location)
        LOG.debug('Task %(task)s is in state %(state)s, progress '
                  '%(progress)s',
                  {'task': task_location,
                   'state': task.get('TaskState'),
                   'progress': task.get('PercentComplete')})
        return task

    try:
        task = _poll()
    except tenacity.RetryError:
        raise exception.RedfishTaskTimeout(task=task_location,
                                           timeout=timeout)

    return (task.get('TaskState') == TASK_STATE_COMPLETED
            and task.get('TaskStatus') != TASK_STATUS_CRITICAL)


def fetch_task_log(conn, task_location, variant):
    """Fetch the vendor log of a task.

    :param conn: a ``sushy.Sushy`` connection.
    :param task_location: URI of the task.
    :param variant: the detected ``VendorVariant``.
    :returns: the log as text.
    """
    path = _TASK_LOG_PATH % {'task': task_location.rstrip('/'),
                             'oem': variant.oem}
    return redfish_utils.get(conn, path).text


def check_online_update_task(conn, task_location, timeout, variant):
    """Wait for an online update task and report its failure.

    :param conn: a ``sushy.Sushy`` connection.
    :param task_location: URI of the check or execute task.
    :param timeout: polling deadline in seconds.
    :param variant: the detected ``VendorVariant``.
    :raises: OnlineUpdateTaskFailed if the task fails, times out, or can
        not be polled. The message carries the task log when it could be
        fetched.
    """
    try:
        if wait_for_task_end(conn, task_location, timeout):
            return
        error = _('the task ended unsuccessfully')
        cause = None
    except exception.IrmcUpdaterException as e:
        error = e
        cause = e

    try:
        task_log = fetch_task_log(conn, task_location, variant)
    except exception.IrmcUpdaterException as log_error:
        LOG.warning('Could not fetch the log of task %(task)s: %(error)s',
                    {'task': task_location, 'error': log_error})
        task_log = _('unavailable')

    LOG.error('Online update task %(task)s failed: %(error)s',
              {'task': task_location, 'error': error})
    raise exception.OnlineUpdateTaskFailed(
        task=task_location, error=error, log=task_log) from cause
