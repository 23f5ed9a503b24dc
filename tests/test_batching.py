import unittest

from subtitle_agent.batching import plan_batches
from subtitle_agent.segments import Segment


def make_segments(count, start=1):
    return [Segment(index=i, source_text=f"line {i}") for i in range(start, start + count)]


class PlanBatchesTests(unittest.TestCase):
    def test_items_partition_input_in_order(self):
        for count in (0, 1, 9, 10, 11, 23, 40):
            for batch_size in (1, 3, 10, 50):
                segments = make_segments(count)
                batches = plan_batches(segments, batch_size, 2)
                flattened = [s for batch in batches for s in batch.items]
                self.assertEqual(flattened, segments)
                seen = set()
                for batch in batches:
                    ids = {s.index for s in batch.items}
                    self.assertFalse(ids & seen)
                    seen |= ids
                    self.assertLessEqual(len(batch.items), batch_size)

    def test_context_bounded_and_empty_at_boundaries(self):
        segments = make_segments(23)
        for context_size in (0, 1, 5, 30):
            batches = plan_batches(segments, 10, context_size)
            self.assertEqual(batches[0].pre_context, [])
            self.assertEqual(batches[-1].post_context, [])
            for batch in batches:
                self.assertLessEqual(len(batch.pre_context), context_size)
                self.assertLessEqual(len(batch.post_context), context_size)
                item_ids = set(batch.indices())
                self.assertFalse(item_ids & {s.index for s in batch.pre_context})
                self.assertFalse(item_ids & {s.index for s in batch.post_context})

    def test_twenty_three_segments_batch_ten_context_five(self):
        segments = make_segments(23)
        batches = plan_batches(segments, 10, 5)

        self.assertEqual([len(b.items) for b in batches], [10, 10, 3])
        self.assertEqual([b.number for b in batches], [1, 2, 3])
        self.assertTrue(all(b.total == 3 for b in batches))

        second = batches[1]
        self.assertEqual([s.index for s in second.pre_context], [6, 7, 8, 9, 10])
        self.assertEqual([s.index for s in second.post_context], [21, 22, 23])
        self.assertEqual([s.index for s in batches[0].post_context], [11, 12, 13, 14, 15])
        self.assertEqual([s.index for s in batches[2].pre_context], [16, 17, 18, 19, 20])

    def test_non_contiguous_indices_use_positions(self):
        segments = [Segment(index=i, source_text=str(i)) for i in (3, 7, 8, 20, 21)]
        batches = plan_batches(segments, 2, 1)
        self.assertEqual([b.indices() for b in batches], [[3, 7], [8, 20], [21]])
        self.assertEqual([s.index for s in batches[1].pre_context], [7])
        self.assertEqual([s.index for s in batches[1].post_context], [21])

    def test_subset_draws_context_from_full_sequence(self):
        full = make_segments(40)
        subset = [full[1], full[39]]
        batches = plan_batches(subset, 1, 2, context_source=full)

        self.assertEqual([b.indices() for b in batches], [[2], [40]])
        self.assertEqual([s.index for s in batches[0].pre_context], [1])
        self.assertEqual([s.index for s in batches[0].post_context], [3, 4])
        self.assertEqual([s.index for s in batches[1].pre_context], [38, 39])
        self.assertEqual(batches[1].post_context, [])

    def test_subset_window_spanning_gap(self):
        full = make_segments(10)
        batches = plan_batches([full[2], full[6]], 2, 1, context_source=full)
        self.assertEqual(batches[0].indices(), [3, 7])
        self.assertEqual([s.index for s in batches[0].pre_context], [2])
        self.assertEqual([s.index for s in batches[0].post_context], [8])

    def test_deterministic(self):
        segments = make_segments(17)
        first = plan_batches(segments, 4, 3)
        second = plan_batches(segments, 4, 3)
        self.assertEqual(first, second)

    def test_texts_include_context(self):
        batches = plan_batches(make_segments(5), 2, 1)
        self.assertEqual(batches[1].texts(), ["line 2", "line 3", "line 4", "line 5"])

    def test_invalid_sizes_raise(self):
        with self.assertRaises(ValueError):
            plan_batches(make_segments(3), 0, 1)
        with self.assertRaises(ValueError):
            plan_batches(make_segments(3), 2, -1)


if __name__ == "__main__":
    unittest.main()
