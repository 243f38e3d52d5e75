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

from oslo_config import cfg

from irmc_updater.common.i18n import _

opts = [
    cfg.IntOpt('online_update_task_timeout',
               min=1,
               default=6000,
               help=_('Maximum time (in seconds) to wait for an eLCM online '
                      'update check or execute task to reach a terminal '
                      'state.')),
    cfg.IntOpt('online_update_task_poll_interval',
               min=1,
               default=5,
               help=_('Interval (in seconds) between polls of an eLCM '
                      'online update task.')),
    cfg.StrOpt('verify_ca',
               default='True',
               help=_('Default value for redfish_verify_ca when the server '
                      'info does not set it. Either a Boolean value, a path '
                      'to a CA_BUNDLE file or directory with certificates of '
                      'trusted CAs.')),
]


def register_opts(conf):
    conf.register_opts(opts, group='irmc')
