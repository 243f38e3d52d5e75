# Copyright 2025 FUJITSU LIMITED
#
# Licensed under the Apache License, Version 2.0 (the "License"); you may
# not use this file except in compliance with the License. You may obtain
# a copy of the License at
#
#      http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS, WITHOUT
# WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied. See the
# License for the specific language governing permissions and limitations
# under the License.

"""
iRMC eLCM online update: checking, selecting and executing updates.

The eLCM online update is a two phase remote action. A check fills the
BMC's update collection, which is then narrowed down by deselecting the
unwanted entries before the remaining ones are executed.
"""
import collections
import datetime
import enum
from http import client as http_client
import re

from oslo_log import log as logging
from oslo_utils import timeutils
import tenacity

from irmc_updater.common import exception
from irmc_updater.common.i18n import _
from irmc_updater.drivers.modules.redfish import utils as redfish_utils

LOG = logging.getLogger(__name__)

CACHE_DURATION = datetime.timedelta(hours=6)
# RFC3339 date-time, the offset is mandatory
_RFC3339_RE = re.compile(
    r'^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(\.\d+)?(Z|[+-]\d{2}:\d{2})$')

# (attempts, seconds between attempts) for each collection read
CACHE_CHECK_RETRIES = (2, 1)
CHECK_VIEW_CACHED_RETRIES = (5, 5)
APPLY_CACHED_RETRIES = (3, 1)
AFTER_CHECK_RETRIES = (12, 5)

# Seconds to wait when the BMC returned no task to poll
CHECK_FALLBACK_WAIT = 5
EXECUTE_FALLBACK_WAIT = 10

COLLECTION_IN_PROGRESS = 'InProgress'

OTHERS = 'Others'
ALLOWED_UPDATE_COMPONENTS = frozenset([
    'Agent-Lx',
    'Agent-Win',
    'FibreChannelController',
    'LanController',
    'ManagementController',
    'PrimSupportPack-Win',
    'ScsiController',
    'Storage',
    'SystemBoard',
    OTHERS,
])
DESIGNATION_SEPARATOR = '/'

OPERATION_TIME_IMMEDIATELY = 'Immediately'
OPERATION_TIME_ONCE = 'Once'
OPERATION_TIMES = (OPERATION_TIME_IMMEDIATELY, OPERATION_TIME_ONCE)

_ACCEPTED_ACTION_STATUSES = (http_client.OK, http_client.CREATED,
                             http_client.ACCEPTED, http_client.NO_CONTENT)
_ACCEPTED_MODIFY_STATUSES = (http_client.OK, http_client.NO_CONTENT)


UpdateItem = collections.namedtuple(
    'UpdateItem',
    ['designation', 'component', 'sub_component', 'current_version',
     'new_version', 'severity', 'status', 'reboot_required', 'downloaded',
     'execution_status', 'release_note_path'])

UpdateCollection = collections.namedtuple(
    'UpdateCollection', ['last_status_change_date', 'items'])

# JSON attribute of the BMC for each UpdateItem field
_ITEM_FIELDS = (
    ('designation', 'Designation'),
    ('component', 'Component'),
    ('sub_component', 'SubComponent'),
    ('current_version', 'Current'),
    ('new_version', 'New'),
    ('severity', 'Severity'),
    ('status', 'Status'),
    ('reboot_required', 'Reboot'),
    ('execution_status', 'Execution'),
    ('release_note_path', 'RelNotePath'),
)


def _parse_update_item(entry):
    fields = {name: entry.get(key) or '' for name, key in _ITEM_FIELDS}
    fields['downloaded'] = bool(entry.get('Downloaded', False))
    return UpdateItem(**fields)


def _parse_collection(body, url):
    try:
        items = tuple(_parse_update_item(entry)
                      for entry in body.get('UpdateCollection') or [])
    except (AttributeError, TypeError) as e:
        raise exception.RedfishDecodeError(url=url, error=e)
    return UpdateCollection(
        last_status_change_date=body.get('LastStatusChangeDate') or '',
        items=items)


def collection_as_dict(collection):
    """Convert an :data:`UpdateCollection` into plain data."""
    return {'last_status_change_date': collection.last_status_change_date,
            'update_collection': [item._asdict()
                                  for item in collection.items]}


def _check_status(response, url, accepted):
    if response.status_code not in accepted:
        raise exception.OnlineUpdateError(
            url=url,
            error=_('unexpected response status %(code)s, response body: '
                    '%(body)s') % {'code': response.status_code,
                                   'body': response.text})


def _post_action(conn, url, payload):
    try:
        return redfish_utils.post(conn, url, payload)
    except exception.RedfishError as e:
        raise exception.OnlineUpdateError(
            url=url, error=_('POST request failed: %s') % e)


def trigger_online_update_check(conn, endpoint):
    """Ask the iRMC to look for available updates.

    :param conn: a ``sushy.Sushy`` connection.
    :param endpoint: the online update action endpoint.
    :returns: the task location, or None if the iRMC returned none.
    :raises: OnlineUpdateError if the request is rejected.
    """
    payload = {'ExecutionMode': 'CheckForUpdate',
               'SchedulingType': OPERATION_TIME_IMMEDIATELY}
    response = _post_action(conn, endpoint, payload)
    _check_status(response, endpoint, _ACCEPTED_ACTION_STATUSES)

    location = response.headers.get('Location')
    if not location:
        LOG.warning('Task Location header not found in the response of '
                    'the online update check at %s.', endpoint)
        return None
    return location


def get_online_update_collection(conn, endpoint):
    """Read the update collection once.

    :param conn: a ``sushy.Sushy`` connection.
    :param endpoint: the get-collection action endpoint.
    :returns: a tuple ``(collection, in_progress)``. ``collection`` is
        None while the BMC still reports the check as in progress.
    :raises: OnlineUpdateError on an unexpected status.
    :raises: RedfishDecodeError on a malformed body.
    """
    response = _post_action(conn, endpoint, {})
    _check_status(response, endpoint, (http_client.OK,))

    body = redfish_utils.decode_json(response, endpoint)
    if not isinstance(body, dict):
        raise exception.RedfishDecodeError(
            url=endpoint, error=_('expected an object, got %s') % body)
    if body.get('Status') == COLLECTION_IN_PROGRESS:
        return None, True
    return _parse_collection(body, endpoint), False


def get_online_update_collection_with_retry(conn, endpoint, retries,
                                            delay):
    """Read the update collection, waiting while the check is running.

    Only the "in progress" answer is retried, any error is raised at once.

    :param conn: a ``sushy.Sushy`` connection.
    :param endpoint: the get-collection action endpoint.
    :param retries: number of attempts.
    :param delay: seconds to wait between attempts.
    :returns: an :data:`UpdateCollection`.
    :raises: OnlineUpdateCollectionNotReady if the collection is still in
        progress after the last attempt.
    """
    @tenacity.retry(
        retry=tenacity.retry_if_result(lambda result: result[1]),
        stop=tenacity.stop_after_attempt(retries),
        wait=tenacity.wait_fixed(delay))
    def _get():
        result = get_online_update_collection(conn, endpoint)
        if result[1]:
            LOG.debug('Online update collection at %s is not ready yet',
                      endpoint)
        return result

    try:
        collection, _in_progress = _get()
    except tenacity.RetryError:
        raise exception.OnlineUpdateCollectionNotReady(url=endpoint,
                                                       retries=retries)
    return collection


def is_collection_cache_valid(conn, endpoint):
    """Tell whether the collection on the BMC is recent enough to reuse.

    Failures to read the collection make the cache invalid, they are
    never raised.

    :param conn: a ``sushy.Sushy`` connection.
    :param endpoint: the get-collection action endpoint.
    :returns: True if the collection changed less than
        :data:`CACHE_DURATION` ago.
    """
    retries, delay = CACHE_CHECK_RETRIES
    try:
        collection = get_online_update_collection_with_retry(
            conn, endpoint, retries, delay)
    except exception.IrmcUpdaterException as e:
        LOG.debug('Online update collection cache is not usable: %s', e)
        return False

    if not collection.last_status_change_date:
        return False
    try:
        if not _RFC3339_RE.match(collection.last_status_change_date):
            raise ValueError(collection.last_status_change_date)
        last_check = timeutils.parse_isotime(
            collection.last_status_change_date)
    except ValueError:
        LOG.debug('Ignoring unparsable LastStatusChangeDate %s',
                  collection.last_status_change_date)
        return False

    age = timeutils.utcnow(with_timezone=True) - last_check
    return age < CACHE_DURATION


class SelectionMode(enum.Enum):
    """How the desired updates are chosen from the collection."""

    ALL = 'all'
    """Every available update."""

    EXPLICIT = 'explicit'
    """Only the requested designations and components."""


UpdateSelection = collections.namedtuple(
    'UpdateSelection',
    ['mode', 'designations', 'components', 'others', 'unrecognized'])

SELECT_ALL = UpdateSelection(SelectionMode.ALL, frozenset(), frozenset(),
                             False, ())


def parse_update_list(update_list):
    """Turn the user's update list into an :data:`UpdateSelection`.

    An absent list, an empty list, and a list of blank entries all select
    every update. Entries that are neither a designation, a known
    component nor the ``Others`` keyword are ignored with a warning.

    :param update_list: a list of strings, or None.
    :returns: an :data:`UpdateSelection`.
    """
    designations = set()
    components = set()
    others = False
    unrecognized = []
    requested = False

    for entry in update_list or []:
        entry = (entry or '').strip()
        if not entry:
            continue
        requested = True

        if entry == OTHERS:
            others = True
        elif DESIGNATION_SEPARATOR in entry:
            designations.add(entry)
        elif entry in ALLOWED_UPDATE_COMPONENTS:
            components.add(entry)
        else:
            unrecognized.append(entry)
            LOG.warning("Ignoring unrecognized item in update_list: "
                        "'%s'. It is not a known component type, specific "
                        "designation (like 'Component/Name'), or the "
                        "keyword 'Others'.", entry)

    if not requested:
        return SELECT_ALL
    return UpdateSelection(SelectionMode.EXPLICIT, frozenset(designations),
                           frozenset(components), others,
                           tuple(unrecognized))


def _is_selected(selection, item):
    if selection.mode is SelectionMode.ALL:
        return True
    if item.designation in selection.designations:
        return True
    if item.component in selection.components:
        return True
    return (selection.others
            and item.component not in ALLOWED_UPDATE_COMPONENTS)


def prepare_update_lists(selection, collection):
    """Split the collection into selected and deselected designations.

    :param selection: an :data:`UpdateSelection`.
    :param collection: an :data:`UpdateCollection`.
    :returns: a tuple ``(selected, deselected)`` of designation lists in
        collection order. ``deselected`` is always empty when every update
        is selected.
    """
    selected = []
    deselected = []
    for item in collection.items:
        if _is_selected(selection, item):
            selected.append(item.designation)
        elif selection.mode is not SelectionMode.ALL:
            deselected.append(item.designation)
    return selected, deselected


def deselect_updates(conn, endpoint, designations):
    """Exclude updates from the next execution.

    :param conn: a ``sushy.Sushy`` connection.
    :param endpoint: the modify-collection action endpoint.
    :param designations: designations to deselect, one request each.
    :raises: OnlineUpdateDeselectFailed naming the first designation that
        could not be deselected.
    """
    for designation in designations:
        payload = {'UpdateCollectionModifications': [
            {'Designation': designation, 'Execution': 'deselected'}]}
        try:
            response = redfish_utils.post(conn, endpoint, payload)
        except exception.RedfishError as e:
            raise exception.OnlineUpdateDeselectFailed(
                url=endpoint, designation=designation, error=e)

        if response.status_code not in _ACCEPTED_MODIFY_STATUSES:
            raise exception.OnlineUpdateDeselectFailed(
                url=endpoint, designation=designation,
                error=_('status code %(code)s: %(body)s') % {
                    'code': response.status_code, 'body': response.text})
        LOG.debug('Deselected online update %s', designation)


def validate_operation_time(operation_time, schedule_time=None):
    """Validate when an online update execution should happen.

    :param operation_time: ``Immediately`` or ``Once``; None means
        ``Immediately``.
    :param schedule_time: start date, mandatory for ``Once``.
    :returns: the effective operation time.
    :raises: InvalidParameterValue on an unknown operation time.
    :raises: MissingParameterValue if ``Once`` comes without a schedule.
    """
    operation_time = operation_time or OPERATION_TIME_IMMEDIATELY
    if operation_time not in OPERATION_TIMES:
        raise exception.InvalidParameterValue(
            _("Invalid operation time '%(value)s', allowed values are "
              "%(allowed)s") % {'value': operation_time,
                                'allowed': ', '.join(OPERATION_TIMES)})
    if operation_time == OPERATION_TIME_ONCE and not schedule_time:
        raise exception.MissingParameterValue(
            _("'schedule_time' is required when 'operation_time' is "
              "'Once'"))
    return operation_time


def build_execute_payload(operation_time, schedule_time=None):
    """Build the body of the online update execute request.

    :param operation_time: ``Immediately`` or ``Once``; None means
        ``Immediately``.
    :param schedule_time: start date, mandatory for ``Once`` and ignored
        otherwise.
    :returns: the request payload as a dictionary.
    """
    operation_time = validate_operation_time(operation_time, schedule_time)
    payload = {'ExecutionMode': 'ExecuteUpdate',
               'SchedulingType': operation_time}

    if operation_time == OPERATION_TIME_ONCE:
        payload['StartDate'] = schedule_time
    elif schedule_time:
        LOG.warning("'schedule_time' is provided but 'operation_time' is "
                    "'Immediately'. 'schedule_time' will be ignored.")
    return payload


def trigger_online_update_execute(conn, endpoint, payload):
    """Start executing the selected updates.

    :param conn: a ``sushy.Sushy`` connection.
    :param endpoint: the online update action endpoint.
    :param payload: the output of :func:`build_execute_payload`.
    :returns: the location of the execute task.
    :raises: OnlineUpdateError if the request is rejected or the response
        carries no task location.
    """
    response = _post_action(conn, endpoint, payload)
    _check_status(response, endpoint, _ACCEPTED_ACTION_STATUSES)

    location = response.headers.get('Location')
    if not location:
        raise exception.OnlineUpdateError(
            url=endpoint,
            error=_('Task Location header not found in response'))
    return location
