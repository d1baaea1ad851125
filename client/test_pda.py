import unittest
from unittest.mock import patch

from solders.keypair import Keypair
from solders.pubkey import Pubkey

import pda
from program_errors import InvalidSeeds, NoValidBumpFound


class AddressDeriverTests(unittest.TestCase):
    def setUp(self) -> None:
        self.program_id = Keypair().pubkey()
        self.owner = Keypair().pubkey()

    def test_derive_is_deterministic(self) -> None:
        seeds = [bytes(self.owner), b"stake"]
        first = pda.derive(seeds, self.program_id)
        second = pda.derive(seeds, self.program_id)
        self.assertEqual(first, second)
        self.assertTrue(0 <= first[1] <= 255)

    def test_derive_matches_find_program_address(self) -> None:
        for seeds in ([b"token_sale"], [bytes(self.owner), b"stake"], [bytes(self.owner), b"config-prize"], []):
            with self.subTest(seeds=seeds):
                self.assertEqual(pda.derive(seeds, self.program_id), Pubkey.find_program_address(seeds, self.program_id))

    def test_result_is_off_curve(self) -> None:
        address, _ = pda.derive([b"token_sale"], self.program_id)
        self.assertFalse(address.is_on_curve())

    def test_seed_order_matters(self) -> None:
        forward, _ = pda.derive([bytes(self.owner), b"stake"], self.program_id)
        reverse, _ = pda.derive([b"stake", bytes(self.owner)], self.program_id)
        self.assertNotEqual(forward, reverse)

    def test_program_id_matters(self) -> None:
        other = Keypair().pubkey()
        self.assertNotEqual(
            pda.derive([b"token_sale"], self.program_id)[0],
            pda.derive([b"token_sale"], other)[0],
        )

    def test_bump_reproduces_address(self) -> None:
        address, bump = pda.derive([bytes(self.owner), b"stake"], self.program_id)
        again = pda.create_program_address([bytes(self.owner), b"stake", bytes([bump])], self.program_id)
        self.assertEqual(address, again)

    def test_search_starts_at_255(self) -> None:
        with patch("pda._is_on_curve", side_effect=[True, True, True, False]):
            _, bump = pda.derive([b"token_sale"], self.program_id)
        self.assertEqual(bump, 252)

    def test_no_valid_bump(self) -> None:
        with patch("pda._is_on_curve", return_value=True) as on_curve:
            with self.assertRaises(NoValidBumpFound):
                pda.derive([b"token_sale"], self.program_id)
        self.assertEqual(on_curve.call_count, 256)

    def test_seed_limits(self) -> None:
        with self.assertRaises(InvalidSeeds):
            pda.derive([b"x" * 33], self.program_id)
        with self.assertRaises(InvalidSeeds):
            pda.derive([b"x"] * 16, self.program_id)
        with self.assertRaises(InvalidSeeds):
            pda.derive(["stake"], self.program_id)

    def test_review_title_must_be_utf8(self) -> None:
        with self.assertRaises(InvalidSeeds):
            pda.review_pda(self.program_id, self.owner, "\ud800")

    def test_named_helpers(self) -> None:
        self.assertEqual(
            pda.stake_position_pda(self.program_id, self.owner),
            pda.derive([bytes(self.owner), b"stake"], self.program_id)[0],
        )
        self.assertEqual(pda.stake_authority_pda(self.program_id), pda.derive([b"stake"], self.program_id)[0])
        self.assertEqual(pda.sale_authority_pda(self.program_id), pda.derive([b"token_sale"], self.program_id)[0])
        self.assertEqual(
            pda.prize_config_pda(self.program_id, self.owner),
            pda.derive([bytes(self.owner), b"config-prize"], self.program_id)[0],
        )
        self.assertEqual(
            pda.review_pda(self.program_id, self.owner, "config-prize"),
            pda.prize_config_pda(self.program_id, self.owner),
        )


if __name__ == "__main__":
    unittest.main()
