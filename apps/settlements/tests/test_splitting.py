import pytest
from decimal import Decimal

from apps.settlements.services.exceptions import InvalidSplitError
from apps.settlements.services.splitting import (
    build_explicit_shares,
    quantize_amount,
    split_evenly,
)


class TestQuantizeAmount:

    def test_rounds_half_away_from_zero(self):
        assert quantize_amount(Decimal('0.005')) == Decimal('0.01')
        assert quantize_amount(Decimal('-0.005')) == Decimal('-0.01')
        assert quantize_amount(Decimal('2.344')) == Decimal('2.34')

    def test_accepts_strings(self):
        assert quantize_amount('10') == Decimal('10.00')


class TestSplitEvenly:

    def test_remainder_goes_to_last_beneficiary(self):
        shares = split_evenly(Decimal('100.00'), ['a', 'b', 'c'])

        assert shares == [
            ('a', Decimal('33.33')),
            ('b', Decimal('33.33')),
            ('c', Decimal('33.34')),
        ]

    def test_submitted_order_decides_who_absorbs_remainder(self):
        shares = split_evenly(Decimal('100.00'), ['c', 'a', 'b'])

        assert shares[-1] == ('b', Decimal('33.34'))

    def test_shares_sum_to_amount(self):
        for amount in ['0.01', '0.02', '10.00', '99.99', '1234.57']:
            shares = split_evenly(Decimal(amount), ['a', 'b', 'c', 'd', 'e', 'f', 'g'])
            assert sum(share for _, share in shares) == Decimal(amount)

    def test_rounding_up_can_leave_negative_remainder(self):
        # 2.00 / 3 = 0.666.. -> 0.67, 0.67, 0.66
        shares = split_evenly(Decimal('2.00'), ['a', 'b', 'c'])

        assert [share for _, share in shares] == [Decimal('0.67'), Decimal('0.67'), Decimal('0.66')]

    def test_single_beneficiary_gets_everything(self):
        assert split_evenly(Decimal('42.10'), ['a']) == [('a', Decimal('42.10'))]

    def test_rejects_split_that_makes_last_share_negative(self):
        # 0.05 / 10 rounds to 0.01 each, leaving -0.04 for the last share
        with pytest.raises(InvalidSplitError):
            split_evenly(Decimal('0.05'), [str(i) for i in range(10)])

    def test_rejects_empty_beneficiaries(self):
        with pytest.raises(InvalidSplitError):
            split_evenly(Decimal('10.00'), [])

    def test_rejects_duplicate_beneficiaries(self):
        with pytest.raises(InvalidSplitError):
            split_evenly(Decimal('10.00'), ['a', 'b', 'a'])


class TestBuildExplicitShares:

    def test_valid_shares(self):
        shares = build_explicit_shares(
            Decimal('50.00'),
            [('a', Decimal('20.00')), ('b', '30'), ('c', Decimal('0'))],
        )

        assert shares == [
            ('a', Decimal('20.00')),
            ('b', Decimal('30.00')),
            ('c', Decimal('0.00')),
        ]

    def test_rejects_sum_mismatch(self):
        with pytest.raises(InvalidSplitError, match='does not equal'):
            build_explicit_shares(Decimal('50.00'), [('a', Decimal('20.00')), ('b', Decimal('20.00'))])

    def test_rejects_missing_share(self):
        with pytest.raises(InvalidSplitError):
            build_explicit_shares(Decimal('50.00'), [('a', Decimal('50.00')), ('b', None)])

    def test_rejects_negative_share(self):
        with pytest.raises(InvalidSplitError):
            build_explicit_shares(Decimal('50.00'), [('a', Decimal('60.00')), ('b', Decimal('-10.00'))])

    def test_rejects_sub_cent_precision(self):
        with pytest.raises(InvalidSplitError):
            build_explicit_shares(Decimal('1.00'), [('a', Decimal('0.333')), ('b', Decimal('0.667'))])

    def test_rejects_duplicates(self):
        with pytest.raises(InvalidSplitError):
            build_explicit_shares(Decimal('2.00'), [('a', Decimal('1.00')), ('a', Decimal('1.00'))])
