"""
Raw transaction parser used by the tests to inspect signed sweeps.
"""

from lnsweep.wallet.signing import Transaction, TxInput, TxOutput


def read_varint(data: bytes, offset: int) -> tuple[int, int]:
    first = data[offset]
    offset += 1

    if first < 0xFD:
        return first, offset
    if first == 0xFD:
        return int.from_bytes(data[offset : offset + 2], "little"), offset + 2
    if first == 0xFE:
        return int.from_bytes(data[offset : offset + 4], "little"), offset + 4
    return int.from_bytes(data[offset : offset + 8], "little"), offset + 8


def deserialize_transaction(tx_bytes: bytes) -> Transaction:
    try:
        offset = 0
        version = int.from_bytes(tx_bytes[offset : offset + 4], "little")
        offset += 4

        marker_flag = False
        if tx_bytes[offset] == 0x00 and tx_bytes[offset + 1] == 0x01:
            marker_flag = True
            offset += 2

        input_count, offset = read_varint(tx_bytes, offset)
        inputs: list[TxInput] = []
        for _ in range(input_count):
            txid = tx_bytes[offset : offset + 32][::-1].hex()
            offset += 32
            vout = int.from_bytes(tx_bytes[offset : offset + 4], "little")
            offset += 4
            script_len, offset = read_varint(tx_bytes, offset)
            script = tx_bytes[offset : offset + script_len]
            offset += script_len
            sequence = int.from_bytes(tx_bytes[offset : offset + 4], "little")
            offset += 4
            inputs.append(TxInput(txid, vout, sequence, script))

        output_count, offset = read_varint(tx_bytes, offset)
        outputs: list[TxOutput] = []
        for _ in range(output_count):
            value = int.from_bytes(tx_bytes[offset : offset + 8], "little")
            offset += 8
            script_len, offset = read_varint(tx_bytes, offset)
            outputs.append(TxOutput(value, tx_bytes[offset : offset + script_len]))
            offset += script_len

        if marker_flag:
            for inp in inputs:
                stack_count, offset = read_varint(tx_bytes, offset)
                for _ in range(stack_count):
                    item_len, offset = read_varint(tx_bytes, offset)
                    inp.witness.append(tx_bytes[offset : offset + item_len])
                    offset += item_len
    except IndexError as e:
        raise ValueError(f"Truncated transaction: {e}") from e

    if offset + 4 != len(tx_bytes):
        raise ValueError("Trailing or missing bytes")
    locktime = int.from_bytes(tx_bytes[offset : offset + 4], "little")
    return Transaction(version, inputs, outputs, locktime)
