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

"""Online update workflows run against a single iRMC."""

import time

from oslo_log import log

from irmc_updater.common.i18n import _
from irmc_updater.common import utils
from irmc_updater.conf import CONF
from irmc_updater.drivers.modules.irmc import common as irmc_common
from irmc_updater.drivers.modules.irmc import online_update
from irmc_updater.drivers.modules.irmc import task as irmc_task
from irmc_updater.drivers.modules.redfish import utils as redfish_utils

LOG = log.getLogger(__name__)

LOCK_OPERATION = 'online-update'


def _prepare(conn):
    variant = irmc_common.detect_vendor(conn)
    endpoints = irmc_common.get_online_update_endpoints(variant)
    irmc_common.check_elcm_license(conn, endpoints.license)
    return variant, endpoints


def _wait_for_task(conn, task_location, variant, fallback_wait):
    if task_location:
        irmc_task.check_online_update_task(
            conn, task_location, CONF.irmc.online_update_task_timeout,
            variant)
    else:
        LOG.debug('No task to poll, waiting %s seconds instead',
                  fallback_wait)
        time.sleep(fallback_wait)


def obtain_update_collection(conn, variant, endpoints, cached_retries):
    """Get the update collection, running a new check if needed.

    A collection the iRMC refreshed recently is reused as is. Otherwise a
    new check is started and awaited first.

    :param conn: a ``sushy.Sushy`` connection.
    :param variant: the detected ``VendorVariant``.
    :param endpoints: the ``OnlineUpdateEndpoints`` of the variant.
    :param cached_retries: ``(attempts, delay)`` used to read a cached
        collection.
    :returns: an ``UpdateCollection``.
    """
    if online_update.is_collection_cache_valid(conn, endpoints.collection):
        LOG.info('Reusing the online update collection cached on the iRMC')
        retries, delay = cached_retries
    else:
        LOG.info('Starting a new online update check via %s',
                 endpoints.check)
        location = online_update.trigger_online_update_check(
            conn, endpoints.check)
        _wait_for_task(conn, location, variant,
                       online_update.CHECK_FALLBACK_WAIT)
        retries, delay = online_update.AFTER_CHECK_RETRIES

    return online_update.get_online_update_collection_with_retry(
        conn, endpoints.collection, retries, delay)


def check_online_update(server_info):
    """Report the updates available on an iRMC.

    :param server_info: dictionary with the ``redfish_*`` access details.
    :returns: dictionary with the check endpoint as ``id``, the
        ``last_status_change_date`` and the ``update_collection``.
    :raises: InvalidParameterValue, MissingParameterValue on bad input.
    :raises: IrmcUpdaterException subclasses on remote failures.
    """
    driver_info = redfish_utils.parse_driver_info(server_info)
    LOG.info('Checking online updates of iRMC %s', driver_info['address'])

    with redfish_utils.connection(driver_info) as conn:
        variant, endpoints = _prepare(conn)
        collection = obtain_update_collection(
            conn, variant, endpoints,
            online_update.CHECK_VIEW_CACHED_RETRIES)

    result = {'id': endpoints.check}
    result.update(online_update.collection_as_dict(collection))
    LOG.info('Online update check of iRMC %(address)s found %(count)d '
             'update(s)', {'address': driver_info['address'],
                           'count': len(collection.items)})
    return result


def apply_online_update(
        server_info, update_list=None,
        operation_time=online_update.OPERATION_TIME_IMMEDIATELY,
        schedule_time=None):
    """Select and execute online updates on an iRMC.

    :param server_info: dictionary with the ``redfish_*`` access details.
    :param update_list: designations, component types or ``Others`` to
        update. None or an empty list means every available update.
    :param operation_time: ``Immediately`` or ``Once``.
    :param schedule_time: start date of the execution, required for
        ``Once``.
    :returns: dictionary with the check endpoint as ``id``, the
        ``selected`` and ``deselected`` designations, whether the update
        was ``executed``, the execute ``task_location`` and the list of
        ``warnings``.
    :raises: InvalidParameterValue, MissingParameterValue on bad input,
        before the iRMC is contacted.
    :raises: IrmcUpdaterException subclasses on remote failures.
    """
    driver_info = redfish_utils.parse_driver_info(server_info)
    operation_time = online_update.validate_operation_time(operation_time,
                                                           schedule_time)
    selection = online_update.parse_update_list(update_list)
    address = driver_info['address']

    with utils.target_lock(address, LOCK_OPERATION), \
            redfish_utils.connection(driver_info) as conn:
        LOG.info('Applying online updates on iRMC %s', address)
        variant, endpoints = _prepare(conn)
        collection = obtain_update_collection(
            conn, variant, endpoints, online_update.APPLY_CACHED_RETRIES)

        result = {'id': endpoints.check, 'selected': [], 'deselected': [],
                  'executed': False, 'task_location': None,
                  'warnings': [_("Ignoring unrecognized item in "
                                 "update_list: '%s'") % entry
                               for entry in selection.unrecognized]}

        if not collection.items:
            LOG.info('Online update check completed successfully, but no '
                     'updates are currently available for iRMC %s',
                     address)
            return result

        selected, deselected = online_update.prepare_update_lists(
            selection, collection)
        result['selected'] = selected
        result['deselected'] = deselected

        online_update.deselect_updates(conn, endpoints.modify_collection,
                                       deselected)

        if schedule_time and (operation_time
                              == online_update.OPERATION_TIME_IMMEDIATELY):
            result['warnings'].append(
                _("'schedule_time' is ignored when 'operation_time' is "
                  "'Immediately'"))
        payload = online_update.build_execute_payload(operation_time,
                                                      schedule_time)

        if not selected and (selection.mode
                             is not online_update.SelectionMode.ALL):
            msg = _("The specified 'update_list' did not match any "
                    "available updates in the collection. No updates were "
                    "executed.")
            LOG.warning('No matching updates found on iRMC %(address)s: '
                        '%(msg)s', {'address': address, 'msg': msg})
            result['warnings'].append(msg)
            return result

        location = online_update.trigger_online_update_execute(
            conn, endpoints.check, payload)
        result['executed'] = True
        result['task_location'] = location

        if operation_time == online_update.OPERATION_TIME_IMMEDIATELY:
            _wait_for_task(conn, location, variant,
                           online_update.EXECUTE_FALLBACK_WAIT)
            LOG.info('Online update of iRMC %(address)s finished, '
                     '%(count)d update(s) executed',
                     {'address': address, 'count': len(selected)})
        else:
            LOG.info('Online update of iRMC %(address)s scheduled for '
                     '%(time)s', {'address': address,
                                  'time': schedule_time})
        return result
