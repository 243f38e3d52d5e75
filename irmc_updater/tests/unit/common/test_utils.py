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

from unittest import mock

from oslo_concurrency import lockutils

from irmc_updater.common import utils
from irmc_updater.tests import base


class TargetLockTestCase(base.TestCase):

    def test_target_lock_name(self):
        self.assertEqual('https://irmc-online-update',
                         utils.target_lock_name('https://irmc',
                                                'online-update'))

    @mock.patch.object(lockutils, 'lock', autospec=True)
    def test_target_lock(self, mock_lock):
        with utils.target_lock('https://irmc', 'online-update'):
            mock_lock.assert_called_once_with('https://irmc-online-update')
            self.assertTrue(mock_lock.return_value.__enter__.called)
            self.assertFalse(mock_lock.return_value.__exit__.called)
        self.assertTrue(mock_lock.return_value.__exit__.called)

    @mock.patch.object(lockutils, 'lock', autospec=True)
    def test_target_lock_released_on_error(self, mock_lock):

        def _locked():
            with utils.target_lock('https://irmc', 'online-update'):
                raise ValueError('boom')

        self.assertRaises(ValueError, _locked)
        self.assertTrue(mock_lock.return_value.__exit__.called)

    def test_target_lock_reacquire(self):
        for _attempt in range(2):
            with utils.target_lock('https://irmc', 'online-update'):
                pass
