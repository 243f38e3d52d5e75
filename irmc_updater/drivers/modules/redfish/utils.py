# Copyright 2017 Red Hat, Inc.
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

import collections
import contextlib
import os

from oslo_log import log
from oslo_utils import excutils
from oslo_utils import strutils
import rfc3986
import sushy
import tenacity

from irmc_updater.common import exception
from irmc_updater.common.i18n import _
from irmc_updater.conf import CONF

LOG = log.getLogger(__name__)

REQUIRED_PROPERTIES = {
    'redfish_address': _('The URL address to the iRMC Redfish service. It '
                         'must include the authority portion of the URL. '
                         'If the scheme is missing, https is assumed. '
                         'For example: https://irmc.example.com. Required'),
    'redfish_username': _('User account with administrator privilege on '
                          'the iRMC. Required'),
    'redfish_password': _('User account password. Required'),
}

OPTIONAL_PROPERTIES = {
    'redfish_verify_ca': _('Either a Boolean value, a path to a CA_BUNDLE '
                           'file or directory with certificates of trusted '
                           'CAs. If set to True the updater will verify the '
                           'host certificates; if False the updater will '
                           'ignore verifying the SSL certificate. If it\'s '
                           'a path the updater will use the specified '
                           'certificate or one of the certificates in the '
                           'directory. Defaults to ``[irmc]verify_ca``. '
                           'Optional'),
    'redfish_auth_type': _('Redfish HTTP client authentication method. Can be '
                           '"basic", "session" or "auto". If not set, the '
                           'default value is taken from the '
                           '``[redfish]auth_type`` option. Optional')
}

COMMON_PROPERTIES = REQUIRED_PROPERTIES.copy()
COMMON_PROPERTIES.update(OPTIONAL_PROPERTIES)


def parse_driver_info(server_info):
    """Parse the information required to connect to the iRMC Redfish API.

    :param server_info: a dictionary with the ``redfish_*`` access keys.
    :returns: dictionary of parameters
    :raises: InvalidParameterValue on malformed parameter(s)
    :raises: MissingParameterValue on missing parameter(s)
    """
    server_info = server_info or {}
    missing_info = [key for key in REQUIRED_PROPERTIES
                    if not server_info.get(key)]
    if missing_info:
        raise exception.MissingParameterValue(_(
            'Missing the following Redfish properties in the server '
            'info: %s') % missing_info)

    unknown_info = sorted(set(server_info) - set(COMMON_PROPERTIES))
    if unknown_info:
        LOG.warning('Ignoring unknown properties in the server info: %s',
                    ', '.join(unknown_info))

    address = server_info['redfish_address']
    try:
        parsed = rfc3986.uri_reference(address)
    except TypeError:
        raise exception.InvalidParameterValue(
            _('Invalid Redfish address %s set in redfish_address') % address)

    if not parsed.scheme or not parsed.authority:
        address = 'https://%s' % address
        parsed = rfc3986.uri_reference(address)
    if not parsed.is_valid(require_scheme=True, require_authority=True):
        raise exception.InvalidParameterValue(
            _('Invalid Redfish address %s set in redfish_address') % address)

    # Check if verify_ca is a Boolean or a file/directory in the file-system
    verify_ca = server_info.get('redfish_verify_ca', CONF.irmc.verify_ca)
    if isinstance(verify_ca, str):
        if os.path.isdir(verify_ca) or os.path.isfile(verify_ca):
            pass
        else:
            try:
                verify_ca = strutils.bool_from_string(verify_ca, strict=True)
            except ValueError:
                raise exception.InvalidParameterValue(
                    _('Invalid value type set in redfish_verify_ca. '
                      'The value should be a Boolean or the path '
                      'to a file/directory, not "%s"') % verify_ca)
    elif isinstance(verify_ca, bool):
        # If it's a boolean it's grand, we don't need to do anything
        pass
    else:
        raise exception.InvalidParameterValue(
            _('Invalid value type set in redfish_verify_ca. The value '
              'should be a Boolean or the path to a file/directory, '
              'not "%s"') % verify_ca)

    auth_type = server_info.get('redfish_auth_type', CONF.redfish.auth_type)
    if auth_type not in ('basic', 'session', 'auto'):
        raise exception.InvalidParameterValue(
            _('Invalid value "%s" set in redfish_auth_type. The value '
              'should be one of "basic", "session" or "auto".') % auth_type)

    return {'address': address,
            'username': server_info.get('redfish_username'),
            'password': server_info.get('redfish_password'),
            'verify_ca': verify_ca,
            'auth_type': auth_type}


class SessionCache(object):
    """Cache of HTTP sessions credentials"""
    AUTH_CLASSES = dict(
        basic=sushy.auth.BasicAuth,
        session=sushy.auth.SessionAuth,
        auto=sushy.auth.SessionOrBasicAuth
    )

    _sessions = collections.OrderedDict()

    def __init__(self, driver_info):
        self._driver_info = driver_info
        self._session_key = tuple(
            self._driver_info.get(key)
            for key in ('address', 'username', 'verify_ca')
        )

    def __enter__(self):
        try:
            return self.__class__._sessions[self._session_key]

        except KeyError:
            auth_type = self._driver_info['auth_type']

            auth_class = self.AUTH_CLASSES[auth_type]

            authenticator = auth_class(
                username=self._driver_info['username'],
                password=self._driver_info['password']
            )

            conn = sushy.Sushy(
                self._driver_info['address'],
                verify=self._driver_info['verify_ca'],
                auth=authenticator
            )

            if CONF.redfish.connection_cache_size:
                self.__class__._sessions[self._session_key] = conn

                if (len(self.__class__._sessions)
                        > CONF.redfish.connection_cache_size):
                    self._expire_oldest_session()

            return conn

    def __exit__(self, exc_type, exc_val, exc_tb):
        # NOTE(etingof): perhaps this session token is no good
        if isinstance(exc_val, sushy.exceptions.ConnectionError):
            self.__class__._sessions.pop(self._session_key, None)
        # NOTE(TheJulia): A hard access error has surfaced, we
        # likely need to eliminate the session.
        if isinstance(exc_val, sushy.exceptions.AccessError):
            self.__class__._sessions.pop(self._session_key, None)

    def expire(self):
        """Forget the cached connection of this iRMC"""
        self.__class__._sessions.pop(self._session_key, None)

    @classmethod
    def _expire_oldest_session(cls):
        """Expire oldest session"""
        session_keys = list(cls._sessions)
        session_key = next(iter(session_keys))
        cls._sessions.pop(session_key, None)


def get_connection(driver_info):
    """Get an authenticated Redfish connection to the iRMC.

    The service root is refreshed through the connection so that a stale
    cached session is detected and replaced before it is handed out.

    :param driver_info: the output of :func:`parse_driver_info`.
    :returns: a ``sushy.Sushy`` instance.
    :raises: RedfishConnectionError when it fails to connect to Redfish
    :raises: RedfishError on authentication failure
    """
    @tenacity.retry(
        retry=tenacity.retry_if_exception_type(
            exception.RedfishConnectionError),
        stop=tenacity.stop_after_attempt(CONF.redfish.connection_attempts),
        wait=tenacity.wait_fixed(CONF.redfish.connection_retry_interval),
        reraise=True)
    def _get_connection():
        try:
            with SessionCache(driver_info) as conn:
                conn.refresh()
                return conn

        except sushy.exceptions.ConnectionError as e:
            LOG.warning('Got a connection error from Redfish at address '
                        '"%(address)s" using auth type "%(auth_type)s". '
                        'Error: %(error)s',
                        {'address': driver_info['address'],
                         'auth_type': driver_info['auth_type'],
                         'error': e})
            raise exception.RedfishConnectionError(
                address=driver_info['address'], error=e)
        except sushy.exceptions.AccessError as e:
            LOG.warning('We received an authentication access error from '
                        'address %(address)s with auth_type %(auth_type)s. '
                        'The client will not be re-used upon the next '
                        're-attempt. Please ensure your using the correct '
                        'credentials. Error: %(error)s',
                        {'address': driver_info['address'],
                         'auth_type': driver_info['auth_type'],
                         'error': e})
            raise exception.RedfishError(error=e)

    try:
        return _get_connection()
    except exception.RedfishConnectionError as e:
        with excutils.save_and_reraise_exception():
            LOG.error('Failed to connect to Redfish at %(address)s. '
                      'Error: %(error)s',
                      {'address': driver_info['address'], 'error': e})


def release_connection(driver_info, conn):
    """Log out of the iRMC and drop the connection from the cache.

    A failed logout is only logged, the BMC expires the session on its own.

    :param driver_info: the output of :func:`parse_driver_info`.
    :param conn: the ``sushy.Sushy`` instance to release.
    """
    SessionCache(driver_info).expire()
    try:
        conn._auth.close()
    except sushy.exceptions.SushyError as e:
        LOG.warning('Failed to log out of Redfish at %(address)s. '
                    'Error: %(error)s',
                    {'address': driver_info['address'], 'error': e})
    else:
        LOG.debug('Logged out of Redfish at %s', driver_info['address'])


@contextlib.contextmanager
def connection(driver_info):
    """Connect to the iRMC for the duration of a ``with`` block.

    The session is released when the block exits, whatever the outcome.
    """
    conn = get_connection(driver_info)
    try:
        yield conn
    finally:
        release_connection(driver_info, conn)


def _request(conn, method, path, payload=None):
    connector = conn._conn
    try:
        if method == 'POST':
            return connector.post(path=path, data=payload)
        return connector.get(path=path)
    except sushy.exceptions.ConnectionError as e:
        LOG.error('%(method)s request to %(path)s failed to connect. '
                  'Error: %(error)s',
                  {'method': method, 'path': path, 'error': e})
        raise exception.RedfishConnectionError(address=path, error=e)
    except sushy.exceptions.HTTPError as e:
        LOG.error('%(method)s request to %(path)s was rejected. '
                  'Error: %(error)s',
                  {'method': method, 'path': path, 'error': e})
        raise exception.RedfishError(error=e)


def get(conn, path):
    """Issue a GET request against the iRMC.

    :param conn: a ``sushy.Sushy`` connection.
    :param path: the URI of the resource.
    :returns: a ``requests.Response`` object.
    :raises: RedfishConnectionError on transport failures
    :raises: RedfishError when the BMC answers with an HTTP error status
    """
    return _request(conn, 'GET', path)


def post(conn, path, payload):
    """Issue a POST request with a JSON payload against the iRMC.

    :param conn: a ``sushy.Sushy`` connection.
    :param path: the URI of the action or collection.
    :param payload: a JSON-serializable request body.
    :returns: a ``requests.Response`` object.
    :raises: RedfishConnectionError on transport failures
    :raises: RedfishError when the BMC answers with an HTTP error status
    """
    return _request(conn, 'POST', path, payload=payload)


def decode_json(response, url):
    """Decode the JSON body of a response.

    :raises: RedfishDecodeError if the body is not valid JSON
    """
    try:
        return response.json()
    except ValueError as e:
        raise exception.RedfishDecodeError(url=url, error=e)
