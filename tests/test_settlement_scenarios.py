"""
End-to-end settlement scenarios: one seed output O1 (value 10, owner K1).
"""
from blockchain.ledger_validator import LedgerValidator


def test_two_step_chain_is_fully_settled(seeded, o1, k1, k2, k3):
    tx1 = k1.pay([o1], [(10, k2.pub)])
    o2 = tx1.output_id(0)
    tx2 = k2.pay([o2], [(10, k3.pub)])
    o3 = tx2.output_id(0)

    lv = LedgerValidator(seeded)
    accepted = lv.resolve_epoch([tx1, tx2])

    assert {tx.txid for tx in accepted} == {tx1.txid, tx2.txid}
    final = lv.utxo_snapshot()
    assert o3 in final
    assert o1 not in final
    assert o2 not in final
    assert len(final) == 1


def test_double_spend_of_seed_output(seeded, o1, k1, k2):
    tx_a = k1.pay([o1], [(10, k2.pub)])
    tx_b = k1.pay([o1], [(10, k1.pub)])

    lv = LedgerValidator(seeded)
    assert lv.resolve_epoch([tx_a, tx_b]) == []
    final = lv.utxo_snapshot()
    assert o1 in final
    assert len(final) == 1
