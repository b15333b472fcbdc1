#!/usr/bin/env python3
"""
Tests for PaymentMethodService: token exchange, error classification and
the guarantee that failed attaches leave the card set untouched.

Run with:
    python -m pytest tests/test_payment_service.py
"""
import os
import sys
import unittest
from unittest.mock import MagicMock

import requests

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from sqlalchemy import select

from db_helpers import TmpDatabaseMixin
import database
from app.services import PaymentMethodService
from payment_gateway import (ProviderCardReference, ProviderError, ProviderUnavailable,
                             StripeTokenizationClient)

TOKEN = 'tok_1A2b3C4d5E6f'
CARD_NUMBER = '4242424242424242'


def _card(card_id='card_1', customer_id='cus_1'):
    return ProviderCardReference(card_id=card_id, customer_id=customer_id, brand='Visa',
                                 last4='4242', exp_month=12, exp_year=2030)


class PaymentTestBase(TmpDatabaseMixin):

    def setUp(self):
        super().setUp()
        self.add_member()
        self.client = MagicMock()
        self.client.exchange_token.return_value = _card()
        self.svc = PaymentMethodService(self.client)

    def stored_card_ids(self):
        session = self.fresh_session()
        return {c.card_id for c in session.scalars(
            select(database.StoredPaymentMethod).where(
                database.StoredPaymentMethod.member_id == 'member-1'))}


class TestAttachCardSuccess(PaymentTestBase):

    def test_card_is_stored(self):
        result = self.svc.attach_card(self.db, 'member-1', TOKEN)
        self.assertTrue(result.ok, result.error)
        self.assertEqual(result.value.card_id, 'card_1')
        stored = self.fresh_session().get(database.StoredPaymentMethod, 'card_1')
        self.assertEqual((stored.brand, stored.last4, stored.exp_month, stored.exp_year),
                         ('Visa', '4242', 12, 2030))

    def test_token_exchanged_once_with_member_details(self):
        self.svc.attach_card(self.db, 'member-1', TOKEN)
        self.client.exchange_token.assert_called_once_with(
            TOKEN, customer_id=None, email='old@x.com')

    def test_new_customer_reference_saved_on_member(self):
        self.svc.attach_card(self.db, 'member-1', TOKEN)
        member = self.fresh_session().get(database.Member, 'member-1')
        self.assertEqual(member.stripe_customer_id, 'cus_1')

    def test_existing_customer_reused(self):
        member = self.db.get(database.Member, 'member-1')
        member.stripe_customer_id = 'cus_existing'
        self.db.commit()
        self.client.exchange_token.return_value = _card(customer_id='cus_existing')
        self.svc.attach_card(self.db, 'member-1', TOKEN)
        self.assertEqual(self.client.exchange_token.call_args.kwargs['customer_id'], 'cus_existing')

    def test_two_attaches_give_two_records(self):
        self.client.exchange_token.side_effect = [_card('card_1'), _card('card_2')]
        first = self.svc.attach_card(self.db, 'member-1', 'tok_first')
        second = self.svc.attach_card(self.db, 'member-1', 'tok_second')
        self.assertTrue(first.ok and second.ok)
        self.assertEqual(self.stored_card_ids(), {'card_1', 'card_2'})
        self.assertEqual([c.card_id for c in self.svc.list_cards(self.db, 'member-1')],
                         ['card_1', 'card_2'])

    def test_no_token_or_card_number_persisted(self):
        self.client.exchange_token.return_value = ProviderCardReference(
            card_id='card_1', customer_id='cus_1', brand='Visa',
            last4=CARD_NUMBER, exp_month=1, exp_year=2031)
        self.svc.attach_card(self.db, 'member-1', TOKEN)
        session = self.fresh_session()
        rows = list(session.scalars(select(database.StoredPaymentMethod)))
        rows += list(session.scalars(select(database.Member)))
        for row in rows:
            for column in row.__table__.columns:
                value = str(getattr(row, column.key))
                self.assertNotIn(TOKEN, value)
                self.assertNotIn(CARD_NUMBER, value)
        self.assertEqual(session.get(database.StoredPaymentMethod, 'card_1').last4, '4242')

    def test_token_never_logged(self):
        with self.assertLogs('veil', level='DEBUG') as logs:
            self.svc.attach_card(self.db, 'member-1', TOKEN)
        self.assertFalse(any(TOKEN in line for line in logs.output))


class TestAttachCardFailures(PaymentTestBase):

    def test_card_error_message_passed_through(self):
        self.client.exchange_token.side_effect = ProviderError('card_error', 'Your card was declined.')
        result = self.svc.attach_card(self.db, 'member-1', TOKEN)
        self.assertEqual(result.kind, 'CardRejected')
        self.assertEqual(result.message, 'Your card was declined.')
        self.assertEqual(self.stored_card_ids(), set())

    def test_other_provider_errors_are_generic(self):
        self.client.exchange_token.side_effect = ProviderError(
            'invalid_request_error', 'No such token: tok_1A2b3C4d5E6f')
        result = self.svc.attach_card(self.db, 'member-1', TOKEN)
        self.assertEqual(result.kind, 'ProviderFailure')
        self.assertNotIn(TOKEN, result.message)
        self.assertEqual(result.message,
                         'An error occurred while talking to one of our backends. Sorry!')

    def test_unreachable_provider_not_retried(self):
        self.client.exchange_token.side_effect = ProviderUnavailable('Timeout')
        result = self.svc.attach_card(self.db, 'member-1', TOKEN)
        self.assertEqual(result.kind, 'ServiceUnavailable')
        self.assertTrue(result.error.retryable)
        self.assertEqual(self.client.exchange_token.call_count, 1)
        self.assertEqual(self.stored_card_ids(), set())

    def test_unwrapped_client_exception_is_typed(self):
        self.client.exchange_token.side_effect = requests.Timeout(f'timed out sending {TOKEN}')
        with self.assertLogs('veil.payment', level='WARNING') as logs:
            result = self.svc.attach_card(self.db, 'member-1', TOKEN)
        self.assertEqual(result.kind, 'ServiceUnavailable')
        self.assertEqual(self.client.exchange_token.call_count, 1)
        self.assertEqual(self.stored_card_ids(), set())
        self.assertFalse(any(TOKEN in line for line in logs.output))

    def test_failure_leaves_existing_cards_unchanged(self):
        self.svc.attach_card(self.db, 'member-1', 'tok_first')
        before = self.stored_card_ids()
        self.client.exchange_token.side_effect = ProviderError('card_error', 'Your card was declined.')
        self.svc.attach_card(self.db, 'member-1', TOKEN)
        self.assertEqual(self.stored_card_ids(), before)

    def test_blank_token_rejected_without_provider_call(self):
        for token in ('', '   ', None):
            result = self.svc.attach_card(self.db, 'member-1', token)
            self.assertEqual(result.kind, 'ValidationError')
        self.client.exchange_token.assert_not_called()

    def test_unknown_member(self):
        result = self.svc.attach_card(self.db, 'nobody', TOKEN)
        self.assertEqual(result.kind, 'MemberNotFound')
        self.client.exchange_token.assert_not_called()

    def test_malformed_provider_reply_is_typed(self):
        client = StripeTokenizationClient('sk_test_123')
        client.session = MagicMock()
        client.session.post.return_value.status_code = 200
        client.session.post.return_value.json.return_value = ['not', 'an', 'object']
        result = PaymentMethodService(client).attach_card(self.db, 'member-1', TOKEN)
        self.assertEqual(result.kind, 'ProviderFailure')
        self.assertEqual(self.stored_card_ids(), set())

    def test_echoed_token_not_stored(self):
        self.client.exchange_token.return_value = _card(card_id=TOKEN)
        result = self.svc.attach_card(self.db, 'member-1', TOKEN)
        self.assertEqual(result.kind, 'ProviderFailure')
        self.assertEqual(self.stored_card_ids(), set())

    def test_store_failure_rolls_back(self):
        # Provider hands back a reference that is already on file.
        self.svc.attach_card(self.db, 'member-1', 'tok_first')
        result = self.svc.attach_card(self.db, 'member-1', 'tok_second')
        self.assertEqual(result.kind, 'UnknownPersistenceFailure')
        self.assertEqual(self.stored_card_ids(), {'card_1'})


if __name__ == '__main__':
    unittest.main()
