# Copyright 2015 FUJITSU LIMITED
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
Common functionalities shared between different iRMC modules.
"""
import collections
import enum
from http import client as http_client

from oslo_log import log as logging

from irmc_updater.common import exception
from irmc_updater.common.i18n import _
from irmc_updater.drivers.modules.redfish import utils as redfish_utils

LOG = logging.getLogger(__name__)

SERVICE_ROOT = '/redfish/v1'

ELCM_LICENSE_NAME = 'eLCM'

_ELCM_ACTION = ('/redfish/v1/Systems/0/Oem/%(oem)s/eLCM/Actions/'
                '%(prefix)seLCM.%(action)s')
_LICENSE_PATH = ('/redfish/v1/Managers/iRMC/Oem/%(oem)s/iRMCConfiguration/'
                 'Licenses')


class VendorVariant(enum.Enum):
    """OEM namespace flavors of the iRMC Redfish API."""

    FSAS = ('Fsas', 'Fsas')
    """iRMC firmware released under the Fsas Technologies brand."""

    TS_FUJITSU = ('ts_fujitsu', 'FTS')
    """iRMC firmware released under the Fujitsu brand."""

    @property
    def oem(self):
        """Name of the ``Oem`` object holding the vendor resources."""
        return self.value[0]

    @property
    def action_prefix(self):
        """Prefix of the vendor action names."""
        return self.value[1]


OnlineUpdateEndpoints = collections.namedtuple(
    'OnlineUpdateEndpoints',
    ['check', 'collection', 'modify_collection', 'license'])


def get_online_update_endpoints(variant):
    """Build the eLCM online update endpoints for a vendor variant.

    :param variant: a :class:`VendorVariant`.
    :returns: an :data:`OnlineUpdateEndpoints` tuple.
    """
    params = {'oem': variant.oem, 'prefix': variant.action_prefix}
    return OnlineUpdateEndpoints(
        check=_ELCM_ACTION % dict(params, action='OnlineUpdate'),
        collection=_ELCM_ACTION % dict(
            params, action='OnlineUpdateGetCollection'),
        modify_collection=_ELCM_ACTION % dict(
            params, action='OnlineUpdateModifyCollection'),
        license=_LICENSE_PATH % params)


def detect_vendor(conn):
    """Detect which OEM namespace the iRMC exposes.

    :param conn: a ``sushy.Sushy`` connection.
    :returns: a :class:`VendorVariant`.
    :raises: VendorDetectionFailed if the service root can not be read.
    """
    try:
        response = redfish_utils.get(conn, SERVICE_ROOT)
        root = redfish_utils.decode_json(response, SERVICE_ROOT)
    except exception.RedfishError as e:
        LOG.error('Failed to read the Redfish service root for vendor '
                  'detection. Error: %s', e)
        raise exception.VendorDetectionFailed(url=SERVICE_ROOT, error=e)

    if not isinstance(root, dict):
        raise exception.VendorDetectionFailed(
            url=SERVICE_ROOT,
            error=_('unexpected service root document %s') % root)

    oem = root.get('Oem') or {}
    if (root.get('Vendor') == VendorVariant.FSAS.oem
            or VendorVariant.FSAS.oem in oem):
        variant = VendorVariant.FSAS
    else:
        variant = VendorVariant.TS_FUJITSU
    LOG.debug('Detected iRMC OEM variant %s', variant.name)
    return variant


def check_elcm_license(conn, endpoint):
    """Verify that the eLCM license is installed on the iRMC.

    :param conn: a ``sushy.Sushy`` connection.
    :param endpoint: the license endpoint of the detected vendor.
    :raises: IRMCLicenseError if the license can not be read or is
        missing.
    """
    try:
        response = redfish_utils.get(conn, endpoint)
    except exception.RedfishError as e:
        raise exception.IRMCLicenseError(
            url=endpoint,
            error=_('failed to get license info: %s') % e)

    if response.status_code != http_client.OK:
        raise exception.IRMCLicenseError(
            url=endpoint,
            error=_('unexpected status code %(code)s while fetching '
                    'licenses: %(body)s') % {'code': response.status_code,
                                             'body': response.text})

    try:
        license_info = redfish_utils.decode_json(response, endpoint)
        keys = [key.get('Name') for key in license_info.get('Keys') or []]
    except (exception.RedfishDecodeError, AttributeError) as e:
        raise exception.IRMCLicenseError(
            url=endpoint,
            error=_('failed to decode license information: %s') % e)

    if ELCM_LICENSE_NAME not in keys:
        raise exception.IRMCLicenseError(
            url=endpoint,
            error=_('eLCM license not found. Online update functionality '
                    'requires an active eLCM license on the iRMC.'))
    LOG.debug('eLCM license present at %s', endpoint)
