import logging

from iterators import EXHAUSTED, from_, from_fn, once, repeat

logging.basicConfig(level=logging.INFO)


def drain(label, it):
    while True:
        item = it.next()
        if item is EXHAUSTED:
            break
        print(f"{label} {item}")


def times_two(n):
    return n * 2


def even(n):
    return n % 2 == 0


def count_to_three(n):
    return None if n == 3 else n + 1


print("\n--- sources ---")
drain("from", from_((1, 2, 3)))
drain("from str", from_("hi"))
drain("once", once(1))
drain("repeat", repeat(1).take(2))
drain("from_fn", from_fn(0, count_to_three))

print("\n--- combinators ---")
drain("take", from_([1, 2, 3]).take(2))
drain("skip", from_([1, 2, 3]).skip(1))
drain("filter", from_([1, 2, 3]).filter(lambda n: n > 3))
drain("map", from_([1, 2, 3]).map(times_two))
drain("zip", from_([1, 2, 3]).zip(from_([4, 5])))
print("fold", from_([1, 2, 3]).fold(0, lambda elem, acc: acc + elem))

print("\n--- combo ---")
drain(
    "combo",
    from_([1, 2, 3])
    .map(times_two)
    .filter(even)
    .take(1)
)

print("\n--- python iteration ---")
for pair in from_(range(3)).zip(repeat("x")):
    print("for", pair)
