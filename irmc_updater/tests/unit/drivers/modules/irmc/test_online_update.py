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
Test class for iRMC eLCM online update.
"""

import datetime
import time
from unittest import mock

from oslo_utils import timeutils

from irmc_updater.common import exception
from irmc_updater.drivers.modules.irmc import online_update
from irmc_updater.drivers.modules.redfish import utils as redfish_utils
from irmc_updater.tests import base

CHECK = ('/redfish/v1/Systems/0/Oem/Fsas/eLCM/Actions/'
         'FsaseLCM.OnlineUpdate')
COLLECTION = CHECK + 'GetCollection'
MODIFY = CHECK + 'ModifyCollection'


def _response(status_code=200, body=None, headers=None, text=''):
    response = mock.Mock(status_code=status_code, text=text,
                         headers=headers or {})
    if isinstance(body, Exception):
        response.json.side_effect = body
    else:
        response.json.return_value = body
    return response


def _item(designation, component=None, **kwargs):
    entry = {'Designation': designation,
             'Component': component or designation.split('/')[0]}
    entry.update(kwargs)
    return entry


def _collection(*designations):
    return online_update.UpdateCollection(
        last_status_change_date='2026-01-01T00:00:00Z',
        items=tuple(online_update._parse_update_item(_item(d))
                    for d in designations))


def _collection_body(items, date='2026-01-01T00:00:00Z'):
    return {'LastStatusChangeDate': date, 'UpdateCollection': items}


@mock.patch.object(redfish_utils, 'post', autospec=True)
class GetOnlineUpdateCollectionTestCase(base.TestCase):

    def setUp(self):
        super(GetOnlineUpdateCollectionTestCase, self).setUp()
        self.conn = mock.Mock()

    def test_get_collection(self, mock_post):
        mock_post.return_value = _response(body=_collection_body([
            {'Designation': 'SystemBoard/BIOS', 'Component': 'SystemBoard',
             'SubComponent': 'BIOS', 'Current': '1.0', 'New': '1.2',
             'Severity': 'Recommended', 'Status': 'Available',
             'Reboot': 'Immediate', 'Downloaded': True,
             'Execution': 'selected', 'RelNotePath': '/notes/bios.html'},
        ]))

        collection, in_progress = online_update.get_online_update_collection(
            self.conn, COLLECTION)

        self.assertFalse(in_progress)
        mock_post.assert_called_once_with(self.conn, COLLECTION, {})
        self.assertEqual('2026-01-01T00:00:00Z',
                         collection.last_status_change_date)
        self.assertEqual(
            online_update.UpdateItem(
                designation='SystemBoard/BIOS', component='SystemBoard',
                sub_component='BIOS', current_version='1.0',
                new_version='1.2', severity='Recommended',
                status='Available', reboot_required='Immediate',
                downloaded=True, execution_status='selected',
                release_note_path='/notes/bios.html'),
            collection.items[0])

    def test_get_collection_missing_fields(self, mock_post):
        mock_post.return_value = _response(body={'UpdateCollection': [
            {'Designation': 'Others/X'}]})

        collection, _in_progress = (
            online_update.get_online_update_collection(self.conn,
                                                       COLLECTION))

        self.assertEqual('', collection.last_status_change_date)
        item = collection.items[0]
        self.assertEqual('Others/X', item.designation)
        self.assertEqual('', item.component)
        self.assertEqual('', item.release_note_path)
        self.assertFalse(item.downloaded)

    def test_get_collection_preserves_order(self, mock_post):
        mock_post.return_value = _response(body=_collection_body(
            [_item('Storage/B'), _item('SystemBoard/A'), _item('Agent-Lx/C')]))
        collection, _in_progress = (
            online_update.get_online_update_collection(self.conn,
                                                       COLLECTION))
        self.assertEqual(['Storage/B', 'SystemBoard/A', 'Agent-Lx/C'],
                         [i.designation for i in collection.items])

    def test_get_collection_empty(self, mock_post):
        mock_post.return_value = _response(body=_collection_body([]))
        collection, in_progress = online_update.get_online_update_collection(
            self.conn, COLLECTION)
        self.assertFalse(in_progress)
        self.assertEqual((), collection.items)

    def test_get_collection_in_progress(self, mock_post):
        mock_post.return_value = _response(body={'Status': 'InProgress'})
        self.assertEqual(
            (None, True),
            online_update.get_online_update_collection(self.conn,
                                                       COLLECTION))

    def test_get_collection_unexpected_status(self, mock_post):
        mock_post.return_value = _response(status_code=202, text='wait')
        self.assertRaisesRegex(exception.OnlineUpdateError,
                               'unexpected response status 202',
                               online_update.get_online_update_collection,
                               self.conn, COLLECTION)

    def test_get_collection_request_error(self, mock_post):
        mock_post.side_effect = exception.RedfishConnectionError(
            address=COLLECTION, error='refused')
        self.assertRaises(exception.OnlineUpdateError,
                          online_update.get_online_update_collection,
                          self.conn, COLLECTION)

    def test_get_collection_decode_error(self, mock_post):
        mock_post.return_value = _response(body=ValueError('not json'))
        self.assertRaises(exception.RedfishDecodeError,
                          online_update.get_online_update_collection,
                          self.conn, COLLECTION)

    def test_get_collection_not_an_object(self, mock_post):
        mock_post.return_value = _response(body=['a'])
        self.assertRaises(exception.RedfishDecodeError,
                          online_update.get_online_update_collection,
                          self.conn, COLLECTION)

    def test_get_collection_malformed_items(self, mock_post):
        mock_post.return_value = _response(
            body={'UpdateCollection': ['Storage/B']})
        self.assertRaises(exception.RedfishDecodeError,
                          online_update.get_online_update_collection,
                          self.conn, COLLECTION)


@mock.patch.object(time, 'sleep', autospec=True)
@mock.patch.object(online_update, 'get_online_update_collection',
                   autospec=True)
class GetCollectionWithRetryTestCase(base.TestCase):

    def setUp(self):
        super(GetCollectionWithRetryTestCase, self).setUp()
        self.conn = mock.Mock()
        self.collection = _collection('SystemBoard/A')

    def test_ready_at_once(self, mock_get, mock_sleep):
        mock_get.return_value = (self.collection, False)
        self.assertEqual(
            self.collection,
            online_update.get_online_update_collection_with_retry(
                self.conn, COLLECTION, 12, 5))
        mock_get.assert_called_once_with(self.conn, COLLECTION)
        self.assertFalse(mock_sleep.called)

    def test_ready_after_retries(self, mock_get, mock_sleep):
        mock_get.side_effect = [(None, True), (None, True),
                                (self.collection, False)]
        self.assertEqual(
            self.collection,
            online_update.get_online_update_collection_with_retry(
                self.conn, COLLECTION, 5, 5))
        self.assertEqual(3, mock_get.call_count)
        mock_sleep.assert_has_calls([mock.call(5), mock.call(5)])

    def test_budget_exhausted(self, mock_get, mock_sleep):
        mock_get.return_value = (None, True)
        self.assertRaisesRegex(
            exception.OnlineUpdateCollectionNotReady, 'after 3 retries',
            online_update.get_online_update_collection_with_retry,
            self.conn, COLLECTION, 3, 1)
        self.assertEqual(3, mock_get.call_count)
        self.assertEqual(2, mock_sleep.call_count)
        mock_sleep.assert_called_with(1)

    def test_error_not_retried(self, mock_get, mock_sleep):
        mock_get.side_effect = exception.OnlineUpdateError(url=COLLECTION,
                                                           error='boom')
        self.assertRaises(
            exception.OnlineUpdateError,
            online_update.get_online_update_collection_with_retry,
            self.conn, COLLECTION, 12, 5)
        mock_get.assert_called_once_with(self.conn, COLLECTION)
        self.assertFalse(mock_sleep.called)


@mock.patch.object(time, 'sleep', lambda seconds: None)
@mock.patch.object(online_update, 'get_online_update_collection',
                   autospec=True)
class CollectionCacheTestCase(base.TestCase):

    def setUp(self):
        super(CollectionCacheTestCase, self).setUp()
        self.conn = mock.Mock()
        patcher = mock.patch.object(timeutils, 'utcnow', autospec=True)
        self.mock_utcnow = patcher.start()
        self.addCleanup(patcher.stop)
        self.mock_utcnow.return_value = datetime.datetime(
            2026, 1, 1, 12, 0, 0, tzinfo=datetime.timezone.utc)

    def _collection(self, date):
        return online_update.UpdateCollection(last_status_change_date=date,
                                              items=())

    def test_fresh(self, mock_get):
        mock_get.return_value = (self._collection('2026-01-01T10:00:00Z'),
                                 False)
        self.assertTrue(online_update.is_collection_cache_valid(
            self.conn, COLLECTION))

    def test_fresh_with_offset(self, mock_get):
        mock_get.return_value = (
            self._collection('2026-01-01T09:00:00+01:00'), False)
        self.assertTrue(online_update.is_collection_cache_valid(
            self.conn, COLLECTION))

    def test_stale(self, mock_get):
        mock_get.return_value = (self._collection('2026-01-01T05:00:00Z'),
                                 False)
        self.assertFalse(online_update.is_collection_cache_valid(
            self.conn, COLLECTION))

    def test_exactly_six_hours(self, mock_get):
        mock_get.return_value = (self._collection('2026-01-01T06:00:00Z'),
                                 False)
        self.assertFalse(online_update.is_collection_cache_valid(
            self.conn, COLLECTION))

    def test_just_under_six_hours(self, mock_get):
        mock_get.return_value = (self._collection('2026-01-01T06:00:01Z'),
                                 False)
        self.assertTrue(online_update.is_collection_cache_valid(
            self.conn, COLLECTION))

    def test_unparsable_date(self, mock_get):
        mock_get.return_value = (self._collection('yesterday'), False)
        self.assertFalse(online_update.is_collection_cache_valid(
            self.conn, COLLECTION))

    def test_fractional_seconds(self, mock_get):
        mock_get.return_value = (
            self._collection('2026-01-01T10:00:00.250Z'), False)
        self.assertTrue(online_update.is_collection_cache_valid(
            self.conn, COLLECTION))
        self.mock_utcnow.assert_called_with(with_timezone=True)

    def test_date_without_offset(self, mock_get):
        mock_get.return_value = (self._collection('2026-01-01T10:00:00'),
                                 False)
        self.assertFalse(online_update.is_collection_cache_valid(
            self.conn, COLLECTION))

    def test_basic_format_date(self, mock_get):
        mock_get.return_value = (self._collection('20260101T100000Z'),
                                 False)
        self.assertFalse(online_update.is_collection_cache_valid(
            self.conn, COLLECTION))

    def test_missing_date(self, mock_get):
        mock_get.return_value = (self._collection(''), False)
        self.assertFalse(online_update.is_collection_cache_valid(
            self.conn, COLLECTION))

    def test_fetch_error(self, mock_get):
        mock_get.side_effect = exception.OnlineUpdateError(url=COLLECTION,
                                                           error='boom')
        self.assertFalse(online_update.is_collection_cache_valid(
            self.conn, COLLECTION))

    def test_in_progress(self, mock_get):
        mock_get.return_value = (None, True)
        self.assertFalse(online_update.is_collection_cache_valid(
            self.conn, COLLECTION))
        self.assertEqual(2, mock_get.call_count)


@mock.patch.object(redfish_utils, 'post', autospec=True)
class TriggerTestCase(base.TestCase):

    def setUp(self):
        super(TriggerTestCase, self).setUp()
        self.conn = mock.Mock()

    def test_trigger_check(self, mock_post):
        mock_post.return_value = _response(
            status_code=202, headers={'Location': '/tasks/1'})
        self.assertEqual('/tasks/1',
                         online_update.trigger_online_update_check(
                             self.conn, CHECK))
        mock_post.assert_called_once_with(
            self.conn, CHECK, {'ExecutionMode': 'CheckForUpdate',
                               'SchedulingType': 'Immediately'})

    def test_trigger_check_accepted_statuses(self, mock_post):
        for status in (200, 201, 202, 204):
            mock_post.return_value = _response(
                status_code=status, headers={'Location': '/tasks/1'})
            self.assertEqual('/tasks/1',
                             online_update.trigger_online_update_check(
                                 self.conn, CHECK))

    @mock.patch.object(online_update, 'LOG', autospec=True)
    def test_trigger_check_no_location(self, mock_log, mock_post):
        mock_post.return_value = _response(status_code=204)
        self.assertIsNone(online_update.trigger_online_update_check(
            self.conn, CHECK))
        self.assertTrue(mock_log.warning.called)

    def test_trigger_check_unexpected_status(self, mock_post):
        mock_post.return_value = _response(status_code=302, text='moved')
        self.assertRaisesRegex(exception.OnlineUpdateError, 'moved',
                               online_update.trigger_online_update_check,
                               self.conn, CHECK)

    def test_trigger_check_request_error(self, mock_post):
        mock_post.side_effect = exception.RedfishError(error='forbidden')
        self.assertRaisesRegex(exception.OnlineUpdateError, 'forbidden',
                               online_update.trigger_online_update_check,
                               self.conn, CHECK)

    def test_trigger_execute(self, mock_post):
        payload = {'ExecutionMode': 'ExecuteUpdate',
                   'SchedulingType': 'Immediately'}
        mock_post.return_value = _response(
            status_code=202, headers={'Location': '/tasks/2'})
        self.assertEqual('/tasks/2',
                         online_update.trigger_online_update_execute(
                             self.conn, CHECK, payload))
        mock_post.assert_called_once_with(self.conn, CHECK, payload)

    def test_trigger_execute_no_location(self, mock_post):
        mock_post.return_value = _response(status_code=202)
        self.assertRaisesRegex(exception.OnlineUpdateError,
                               'Location header not found',
                               online_update.trigger_online_update_execute,
                               self.conn, CHECK, {})

    def test_trigger_execute_unexpected_status(self, mock_post):
        mock_post.return_value = _response(status_code=205)
        self.assertRaises(exception.OnlineUpdateError,
                          online_update.trigger_online_update_execute,
                          self.conn, CHECK, {})


class ParseUpdateListTestCase(base.TestCase):

    def test_select_all(self):
        for value in (None, [], ['', '  '], [None]):
            selection = online_update.parse_update_list(value)
            self.assertIs(online_update.SelectionMode.ALL, selection.mode)

    def test_explicit(self):
        selection = online_update.parse_update_list(
            [' SystemBoard ', 'Storage/B', 'Others', ''])
        self.assertIs(online_update.SelectionMode.EXPLICIT, selection.mode)
        self.assertEqual({'SystemBoard'}, selection.components)
        self.assertEqual({'Storage/B'}, selection.designations)
        self.assertTrue(selection.others)
        self.assertEqual((), selection.unrecognized)

    @mock.patch.object(online_update, 'LOG', autospec=True)
    def test_unrecognized(self, mock_log):
        selection = online_update.parse_update_list(['Bogus', 'Storage'])
        self.assertIs(online_update.SelectionMode.EXPLICIT, selection.mode)
        self.assertEqual({'Storage'}, selection.components)
        self.assertEqual(('Bogus',), selection.unrecognized)
        self.assertEqual(1, mock_log.warning.call_count)

    @mock.patch.object(online_update, 'LOG', autospec=True)
    def test_only_unrecognized_is_explicit(self, mock_log):
        selection = online_update.parse_update_list(['Bogus'])
        self.assertIs(online_update.SelectionMode.EXPLICIT, selection.mode)
        self.assertFalse(selection.components)
        self.assertFalse(selection.designations)
        self.assertFalse(selection.others)


class PrepareUpdateListsTestCase(base.TestCase):

    def _prepare(self, update_list, collection):
        return online_update.prepare_update_lists(
            online_update.parse_update_list(update_list), collection)

    def test_component(self):
        collection = _collection('SystemBoard/A', 'Storage/B')
        self.assertEqual((['SystemBoard/A'], ['Storage/B']),
                         self._prepare(['SystemBoard'], collection))

    def test_others(self):
        collection = _collection('SystemBoard/A', 'VendorX/C')
        self.assertEqual((['VendorX/C'], ['SystemBoard/A']),
                         self._prepare(['Others'], collection))

    def test_designation(self):
        collection = _collection('Storage/B', 'Storage/D', 'SystemBoard/A')
        self.assertEqual((['Storage/D'], ['Storage/B', 'SystemBoard/A']),
                         self._prepare(['Storage/D'], collection))

    def test_designation_not_in_collection(self):
        collection = _collection('Storage/B')
        self.assertEqual(([], ['Storage/B']),
                         self._prepare(['Storage/Z'], collection))

    def test_select_all(self):
        collection = _collection('SystemBoard/A', 'VendorX/C', 'Storage/B')
        self.assertEqual(
            (['SystemBoard/A', 'VendorX/C', 'Storage/B'], []),
            self._prepare(None, collection))

    def test_order_follows_collection(self):
        collection = _collection('Storage/B', 'SystemBoard/A', 'Agent-Lx/C',
                                 'LanController/D')
        self.assertEqual(
            (['Storage/B', 'LanController/D'],
             ['SystemBoard/A', 'Agent-Lx/C']),
            self._prepare(['LanController', 'Storage'], collection))

    def test_every_item_is_classified_once(self):
        collection = _collection('SystemBoard/A', 'Storage/B', 'VendorX/C',
                                 'Agent-Win/D')
        selected, deselected = self._prepare(
            ['Agent-Win', 'Storage/B', 'Others'], collection)
        self.assertEqual(['Storage/B', 'VendorX/C', 'Agent-Win/D'],
                         selected)
        self.assertEqual(['SystemBoard/A'], deselected)
        self.assertFalse(set(selected) & set(deselected))

    @mock.patch.object(online_update, 'LOG', autospec=True)
    def test_nothing_matches(self, mock_log):
        collection = _collection('SystemBoard/A')
        self.assertEqual(([], ['SystemBoard/A']),
                         self._prepare(['Bogus'], collection))


@mock.patch.object(redfish_utils, 'post', autospec=True)
class DeselectUpdatesTestCase(base.TestCase):

    def setUp(self):
        super(DeselectUpdatesTestCase, self).setUp()
        self.conn = mock.Mock()

    def _payload(self, designation):
        return {'UpdateCollectionModifications': [
            {'Designation': designation, 'Execution': 'deselected'}]}

    def test_deselect(self, mock_post):
        mock_post.side_effect = [_response(status_code=200),
                                 _response(status_code=204)]
        online_update.deselect_updates(self.conn, MODIFY,
                                       ['Storage/B', 'Agent-Lx/C'])
        mock_post.assert_has_calls([
            mock.call(self.conn, MODIFY, self._payload('Storage/B')),
            mock.call(self.conn, MODIFY, self._payload('Agent-Lx/C'))])

    def test_deselect_nothing(self, mock_post):
        online_update.deselect_updates(self.conn, MODIFY, [])
        self.assertFalse(mock_post.called)

    def test_deselect_stops_at_first_failure(self, mock_post):
        mock_post.side_effect = [_response(status_code=200),
                                 _response(status_code=202, text='busy')]
        exc = self.assertRaises(exception.OnlineUpdateDeselectFailed,
                                online_update.deselect_updates,
                                self.conn, MODIFY,
                                ['Storage/B', 'Agent-Lx/C', 'Storage/D'])
        self.assertIn("'Agent-Lx/C'", str(exc))
        self.assertIn('busy', str(exc))
        self.assertEqual(2, mock_post.call_count)

    def test_deselect_request_error(self, mock_post):
        mock_post.side_effect = exception.RedfishConnectionError(
            address=MODIFY, error='reset')
        self.assertRaisesRegex(exception.OnlineUpdateDeselectFailed,
                               'Storage/B',
                               online_update.deselect_updates,
                               self.conn, MODIFY, ['Storage/B'])


class ValidateOperationTimeTestCase(base.TestCase):

    def test_default(self):
        self.assertEqual('Immediately',
                         online_update.validate_operation_time(None))

    def test_once(self):
        self.assertEqual('Once', online_update.validate_operation_time(
            'Once', '2026-01-02T03:00:00'))

    def test_immediately_with_schedule_time(self):
        self.assertEqual('Immediately',
                         online_update.validate_operation_time(
                             'Immediately', '2026-01-02T03:00:00'))

    def test_once_without_schedule_time(self):
        self.assertRaisesRegex(exception.MissingParameterValue,
                               'schedule_time',
                               online_update.validate_operation_time,
                               'Once')

    def test_invalid(self):
        self.assertRaises(exception.InvalidParameterValue,
                          online_update.validate_operation_time,
                          'immediately')


class BuildExecutePayloadTestCase(base.TestCase):

    def test_immediately(self):
        self.assertEqual(
            {'ExecutionMode': 'ExecuteUpdate',
             'SchedulingType': 'Immediately'},
            online_update.build_execute_payload('Immediately'))

    def test_default_operation_time(self):
        self.assertEqual(
            {'ExecutionMode': 'ExecuteUpdate',
             'SchedulingType': 'Immediately'},
            online_update.build_execute_payload(None))

    def test_once(self):
        self.assertEqual(
            {'ExecutionMode': 'ExecuteUpdate', 'SchedulingType': 'Once',
             'StartDate': '2026-01-02T03:00:00'},
            online_update.build_execute_payload('Once',
                                                '2026-01-02T03:00:00'))

    def test_once_without_schedule_time(self):
        for schedule_time in (None, ''):
            self.assertRaises(exception.MissingParameterValue,
                              online_update.build_execute_payload,
                              'Once', schedule_time)

    @mock.patch.object(online_update, 'LOG', autospec=True)
    def test_immediately_ignores_schedule_time(self, mock_log):
        payload = online_update.build_execute_payload('Immediately',
                                                      '2026-01-02T03:00:00')
        self.assertNotIn('StartDate', payload)
        self.assertTrue(mock_log.warning.called)

    def test_invalid_operation_time(self):
        self.assertRaisesRegex(exception.InvalidParameterValue,
                               'Invalid operation time',
                               online_update.build_execute_payload,
                               'Weekly')
