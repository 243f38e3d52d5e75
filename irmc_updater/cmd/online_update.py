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
Run iRMC eLCM online update checks and executions from the command line.
"""

import os
import sys

from oslo_config import cfg
from oslo_log import log
from oslo_serialization import jsonutils

from irmc_updater.common import exception
from irmc_updater.common.i18n import _
from irmc_updater.common import service
from irmc_updater.conductor import online_update
from irmc_updater.conf import CONF
from irmc_updater.drivers.modules.irmc import online_update as irmc_update

LOG = log.getLogger(__name__)

PASSWORD_ENV = 'IRMC_REDFISH_PASSWORD'


def _server_info():
    info = {'redfish_address': CONF.command.address,
            'redfish_username': CONF.command.username,
            'redfish_password': (CONF.command.password
                                 or os.environ.get(PASSWORD_ENV))}
    if CONF.command.verify_ca is not None:
        info['redfish_verify_ca'] = CONF.command.verify_ca
    if CONF.command.auth_type is not None:
        info['redfish_auth_type'] = CONF.command.auth_type
    return info


class OnlineUpdateCommand(object):

    def check(self):
        return online_update.check_online_update(_server_info())

    def apply(self):
        return online_update.apply_online_update(
            _server_info(),
            update_list=CONF.command.update,
            operation_time=CONF.command.operation_time,
            schedule_time=CONF.command.schedule_time)


def _add_connection_arguments(parser):
    parser.add_argument(
        '--address', required=True,
        help=_("URL of the iRMC Redfish service, https is assumed if the "
               "scheme is missing."))
    parser.add_argument(
        '--username', required=True,
        help=_("iRMC user with administrator privilege."))
    parser.add_argument(
        '--password',
        help=_("Password of the iRMC user. Read from the %s environment "
               "variable if not given.") % PASSWORD_ENV)
    parser.add_argument(
        '--verify-ca', dest='verify_ca',
        help=_("True, False or the path to a CA bundle. Defaults to "
               "[irmc]verify_ca."))
    parser.add_argument(
        '--auth-type', dest='auth_type',
        choices=['basic', 'session', 'auto'],
        help=_("Redfish authentication method. Defaults to "
               "[redfish]auth_type."))


def add_command_parsers(subparsers):
    command_object = OnlineUpdateCommand()

    parser = subparsers.add_parser(
        'check',
        help=_("Check which online updates are available on the iRMC and "
               "print the update collection. A collection the iRMC "
               "refreshed during the last 6 hours is reused."))
    _add_connection_arguments(parser)
    parser.set_defaults(func=command_object.check)

    parser = subparsers.add_parser(
        'apply',
        help=_("Select and execute online updates on the iRMC. Without "
               "--update every available update is executed."))
    _add_connection_arguments(parser)
    parser.add_argument(
        '--update', action='append', metavar='<designation|component>',
        help=_("Designation (Component/Name), component type or 'Others' "
               "to update. May be repeated."))
    parser.add_argument(
        '--operation-time', dest='operation_time',
        choices=list(irmc_update.OPERATION_TIMES),
        default=irmc_update.OPERATION_TIME_IMMEDIATELY,
        help=_("Run the updates immediately and wait for them, or schedule "
               "them 'Once' at --schedule-time."))
    parser.add_argument(
        '--schedule-time', dest='schedule_time',
        help=_("Start date of a scheduled update, required with "
               "--operation-time Once."))
    parser.set_defaults(func=command_object.apply)


def main():
    command_opt = cfg.SubCommandOpt('command',
                                    title='Command',
                                    help=_('Available commands'),
                                    handler=add_command_parsers)

    CONF.register_cli_opt(command_opt)
    service.prepare_command(sys.argv)

    try:
        result = CONF.command.func()
    except exception.IrmcUpdaterException as e:
        LOG.error('%(command)s failed: %(error)s',
                  {'command': CONF.command.name, 'error': e})
        sys.exit(1)

    print(jsonutils.dumps(result, indent=2, sort_keys=True))
