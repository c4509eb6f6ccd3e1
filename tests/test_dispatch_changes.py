"""Tests for sending changes and cleared-row deletions to HubDB."""

import pytest

from check_changes import Change, ChangeType, FieldChange
from conftest import make_record
from dispatch_changes import ChangeDispatcher, OrphanDeleter, filter_syncable
from fakes import FakeResponse
from sheet_records import OrphanedRow
from sync_errors import TransportFailure


def deleted(remote_id, position):
    return Change(
        type=ChangeType.DELETED,
        unique_id=remote_id,
        old_record=make_record(remote_id, remote_id=remote_id, position=position),
    )


def updated(remote_id, position, results='6-4'):
    return Change(
        type=ChangeType.UPDATED,
        unique_id=remote_id,
        new_record=make_record(remote_id, remote_id=remote_id, position=position, results=results),
        old_record=make_record(remote_id, remote_id=remote_id, position=position),
        changed_fields=[FieldChange('results', '', results)],
    )


@pytest.fixture
def dispatcher(client, recorder):
    return ChangeDispatcher(client, recorder, delay_seconds=0)


class TestFilterSyncable:

    def test_drops_changes_without_remote_id(self):
        new = Change(type=ChangeType.NEW, unique_id='temp_5', new_record=make_record('temp_5', position=5))
        kept = updated('7', 7)
        assert filter_syncable([new, kept]) == [kept]

    def test_drops_skipped_ids(self):
        assert filter_syncable([updated('7', 7)], skip_ids={'7'}) == []


class TestBatchDeletes:

    def test_partial_batch_marks_each_row(self, dispatcher, sheet, session, hubdb):
        for position, remote_id in ((10, 'A'), (11, 'B'), (12, 'C')):
            sheet.set_row(position, remote_id=remote_id)
        hubdb.failing_deletes.add('B')

        result = dispatcher.send([deleted('A', 10), deleted('B', 11), deleted('C', 12)])

        assert session.operations() == ['BATCH_DELETE_HUBDB_ROWS']
        assert hubdb.combined_requests == []
        assert result.deleted_ids == ['A', 'C']
        assert result.failed_ids == ['B']
        assert sheet.status(10) == 'deleted'
        assert sheet.message(10) == 'Successfully deleted from HubDB'
        assert sheet.rows[10].remote_id == ''
        assert sheet.status(11) == 'error'
        assert sheet.message(11) == 'Batch deletion failed'
        assert sheet.rows[11].remote_id == 'B'
        assert sheet.status(12) == 'deleted'

    def test_single_delete_goes_in_combined_request(self, dispatcher, sheet, session, hubdb):
        result = dispatcher.send([deleted('A', 10)])

        assert session.operations() == ['CHANGES']
        operation = hubdb.combined_requests[0]['records'][0]
        assert operation['operation'] == 'DELETED'
        assert operation['changedFields'] == ['DELETED']
        assert result.deleted_ids == ['A']
        assert sheet.status(10) == 'deleted'

    def test_batch_transport_failure_falls_back(self, dispatcher, sheet, session, hubdb):
        hubdb.overrides['BATCH_DELETE_HUBDB_ROWS'] = FakeResponse(500, text_body='boom')

        result = dispatcher.send([deleted('A', 10), deleted('B', 11), updated('7', 7)])

        assert session.operations() == ['BATCH_DELETE_HUBDB_ROWS', 'CHANGES']
        operations = [r['operation'] for r in hubdb.combined_requests[0]['records']]
        assert operations == ['UPDATED', 'DELETED', 'DELETED']
        assert (10, 'error') in sheet.status_log
        assert sheet.status(10) == 'deleted'
        assert sheet.status(11) == 'deleted'
        assert sheet.status(7) == 'sync success'
        assert sheet.message(7) == 'UPDATED operation completed successfully'
        assert sorted(result.deleted_ids) == ['A', 'B']

    def test_batch_reported_failure_falls_back(self, dispatcher, sheet, hubdb):
        hubdb.overrides['BATCH_DELETE_HUBDB_ROWS'] = FakeResponse(200, {'success': False, 'message': 'quota'})

        dispatcher.send([deleted('A', 10), deleted('B', 11)])

        assert len(hubdb.combined_requests) == 1
        assert len(hubdb.combined_requests[0]['records']) == 2
        assert sheet.status(11) == 'deleted'


class TestCombinedRequest:

    def test_failure_marks_rows_and_raises(self, dispatcher, sheet, hubdb):
        hubdb.overrides['CHANGES'] = FakeResponse(500, text_body='down')

        with pytest.raises(TransportFailure):
            dispatcher.send([updated('7', 7), updated('8', 8)])

        assert sheet.status(7) == 'error'
        assert sheet.message(7) == 'HTTP 500: down'
        assert sheet.status(8) == 'error'

    def test_rows_go_through_syncing(self, dispatcher, sheet):
        dispatcher.send([updated('7', 7)])
        assert sheet.status_log == [(7, ''), (7, 'syncing'), (7, 'sync success')]

    def test_deleted_row_reused_by_live_record_is_left_alone(self, client, recorder, sheet):
        sheet.set_row(5, remote_id='77', player1='Ong', player2='Lim')
        dispatcher = ChangeDispatcher(client, recorder, occupied_positions={5}, delay_seconds=0)

        result = dispatcher.send([deleted('A', 5)])

        assert result.deleted_ids == ['A']
        assert sheet.rows[5].remote_id == '77'
        assert sheet.status_log == []

    def test_nothing_to_send(self, dispatcher, session):
        result = dispatcher.send([])
        assert result.sent == []
        assert session.payloads == []


class TestOrphanDeleter:

    def test_single_orphan_uses_single_delete(self, client, recorder, sheet, session):
        sheet.set_row(7, remote_id='777')
        sheet.clear_data(7)

        removed = OrphanDeleter(client, recorder, delay_seconds=0).delete([OrphanedRow(7, '777')])

        assert removed == ['777']
        assert session.operations() == ['DELETE_HUBDB_ROW']
        assert session.payloads[0]['metadata']['reason'] == 'row_cleared'
        assert sheet.rows[7].remote_id == ''
        assert sheet.status(7) == 'deleted'

    def test_single_delete_failure_keeps_id(self, client, recorder, sheet, hubdb):
        sheet.set_row(7, remote_id='777')
        hubdb.failing_deletes.add('777')

        removed = OrphanDeleter(client, recorder, delay_seconds=0).delete([OrphanedRow(7, '777')])

        assert removed == []
        assert sheet.rows[7].remote_id == '777'
        assert sheet.message(7) == 'Deletion failed: Row not found'

    def test_batch_with_partial_failure(self, client, recorder, sheet, session, hubdb):
        hubdb.failing_deletes.add('8')
        orphans = [OrphanedRow(7, '7'), OrphanedRow(8, '8')]

        removed = OrphanDeleter(client, recorder, delay_seconds=0).delete(orphans)

        assert removed == ['7']
        assert session.operations() == ['BATCH_DELETE_HUBDB_ROWS']
        assert session.payloads[0]['metadata']['reason'] == 'rows_cleared'
        assert sheet.status(7) == 'deleted'
        assert sheet.status(8) == 'error'
        assert sheet.message(8) == 'Batch deletion failed'

    def test_batch_failure_falls_back_to_single_deletes(self, client, recorder, sheet, session, hubdb):
        hubdb.overrides['BATCH_DELETE_HUBDB_ROWS'] = FakeResponse(503, text_body='unavailable')
        orphans = [OrphanedRow(7, '7'), OrphanedRow(8, '8')]

        removed = OrphanDeleter(client, recorder, delay_seconds=0).delete(orphans)

        assert removed == ['7', '8']
        assert session.operations() == ['BATCH_DELETE_HUBDB_ROWS', 'DELETE_HUBDB_ROW', 'DELETE_HUBDB_ROW']
        assert sheet.status(7) == 'deleted'
        assert sheet.status(8) == 'deleted'
