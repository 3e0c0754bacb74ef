from __future__ import annotations

import numpy as np

from data_structures import ObsCell, SplitNux


class CutAccum:
    """Right-to-left cut search over a candidate's observation cell.

    The running ``sum``/``s_count`` hold the left-hand side of the cut under
    evaluation.  They start at the node totals and each observation the scan
    passes migrates to the right, so every cut evaluated splits the node
    totals exactly.
    """

    def __init__(self, cand: SplitNux) -> None:
        self.cell: ObsCell = cand.cell
        self.obs_start = self.cell.obs_start
        self.obs_end = self.cell.obs_end
        self.cut_residual = self.cell.cut_residual

        self.sum_total = float(cand.sum)
        self.s_count_total = int(cand.s_count)
        self.sum = self.sum_total
        self.s_count = self.s_count_total

        self.info = 0.0
        self.rank_low = -1
        self.rank_high = -1
        self.implicit_left = False

    @classmethod
    def split(cls, cand: SplitNux) -> float:
        """Scans the candidate, records the best cut on it and returns the gain."""
        cut_accum = cls(cand)
        info_cell = cut_accum.info
        if cand.get_implicit_count() != 0:
            cut_accum.split_impl()
        else:
            cut_accum.split_rl(cut_accum.obs_start, cut_accum.obs_end)
        cand.set_info(cut_accum.info - info_cell)
        cut_accum.write_cut(cand)
        return cand.info

    def accumulate(self, idx: int) -> bool:
        raise NotImplementedError

    def accumulate_residual(self) -> None:
        raise NotImplementedError

    def trial_info(self) -> float:
        raise NotImplementedError

    def split_rl(self, idx_start: int, idx_end: int) -> None:
        """Tries cuts idx_end-1/idx_end-2 down to idx_start+1/idx_start."""
        for idx in range(idx_end - 1, idx_start, -1):
            if not self.accumulate(idx):
                self.argmax_rl(self.trial_info(), idx - 1)

    def split_impl(self) -> None:
        if self.cut_residual < self.obs_end:
            self.split_rl(self.cut_residual, self.obs_end)
            self.split_residual()
        if self.cut_residual > self.obs_start:
            self.residual_rl()

    def split_residual(self) -> None:
        """Tries the cut with the implicit observations rightmost on the left."""
        self.accumulate(self.cut_residual)
        self.argmax_residual(self.trial_info(), True)

    def residual_rl(self) -> None:
        """Moves the implicit observations right, then resumes the ordinary scan."""
        self.accumulate_residual()
        self.argmax_residual(self.trial_info(), False)
        self.split_rl(self.obs_start, self.cut_residual)

    def argmax_rl(self, info_trial: float, idx: int) -> None:
        if info_trial > self.info:
            self.info = info_trial
            ranks = self.cell.ranks
            self.rank_low = int(ranks[idx])
            self.rank_high = int(ranks[idx + 1])
            implicit = self.cell.implicit
            self.implicit_left = implicit is not None and implicit.rank < self.rank_high

    def argmax_residual(self, info_trial: float, implicit_left: bool) -> None:
        if info_trial > self.info:
            self.info = info_trial
            ranks = self.cell.ranks
            implicit_rank = self.cell.implicit.rank
            if implicit_left:
                self.rank_low = implicit_rank
                self.rank_high = int(ranks[self.cut_residual])
            else:
                self.rank_low = int(ranks[self.cut_residual - 1])
                self.rank_high = implicit_rank
            self.implicit_left = implicit_left

    def write_cut(self, cand: SplitNux) -> None:
        cand.rank_low = self.rank_low
        cand.rank_high = self.rank_high
        cand.implicit_left = self.implicit_left

    def left_right(self) -> tuple[float, float, int, int]:
        return (
            self.sum,
            self.sum_total - self.sum,
            self.s_count,
            self.s_count_total - self.s_count,
        )


class CutAccumRegCart(CutAccum):
    """Variance-reduction cut search for a numeric response or residual."""

    def __init__(self, cand: SplitNux) -> None:
        super().__init__(cand)
        self.mono_mode = int(np.sign(cand.mono_mode))
        self.info = self.info_var(self.sum, 0.0, self.s_count, 0)

    @staticmethod
    def info_var(sum_l: float, sum_r: float, s_count_l: int, s_count_r: int) -> float:
        info = 0.0
        if s_count_l > 0:
            info += (sum_l * sum_l) / s_count_l
        if s_count_r > 0:
            info += (sum_r * sum_r) / s_count_r
        return info

    def accumulate(self, idx: int) -> bool:
        self.sum -= float(self.cell.y_sum[idx])
        self.s_count -= int(self.cell.s_count[idx])
        return bool(self.cell.is_tied(idx))

    def accumulate_residual(self) -> None:
        implicit = self.cell.implicit
        self.sum -= implicit.sum
        self.s_count -= implicit.s_count

    def sense_monotone(self) -> bool:
        """Whether the left/right means order as the monotone mode requires."""
        sum_l, sum_r, s_count_l, s_count_r = self.left_right()
        if s_count_l <= 0 or s_count_r <= 0:
            return False
        mean_l = sum_l / s_count_l
        mean_r = sum_r / s_count_r
        if self.mono_mode > 0:
            return mean_l <= mean_r
        return mean_l >= mean_r

    def trial_info(self) -> float:
        sum_l, sum_r, s_count_l, s_count_r = self.left_right()
        if s_count_l <= 0 or s_count_r <= 0:
            return 0.0
        if self.mono_mode != 0 and not self.sense_monotone():
            return 0.0
        return self.info_var(sum_l, sum_r, s_count_l, s_count_r)


class CutAccumCtgCart(CutAccum):
    """Gini cut search for a categorical response."""

    def __init__(self, cand: SplitNux) -> None:
        super().__init__(cand)
        self.ctg_sum = np.asarray(cand.ctg_sum, dtype=np.float64)
        # Right-hand per-category sums; left-hand sums are node sums less these.
        self.ctg_accum = np.zeros_like(self.ctg_sum)
        self.ss_l = float(np.dot(self.ctg_sum, self.ctg_sum))
        self.ss_r = 0.0
        self.info = self.ss_l / self.sum if self.sum > 0.0 else 0.0

    @staticmethod
    def info_gini(ss_l: float, ss_r: float, sum_l: float, sum_r: float) -> float:
        if sum_l <= 0.0 or sum_r <= 0.0:
            return 0.0
        return ss_l / sum_l + ss_r / sum_r

    def _shift_ctg(self, ctg: int, y_sum: float) -> None:
        sum_r_ctg = self.ctg_accum[ctg]
        sum_l_ctg = self.ctg_sum[ctg] - sum_r_ctg
        self.ss_r += y_sum * (y_sum + 2.0 * sum_r_ctg)
        self.ss_l += y_sum * (y_sum - 2.0 * sum_l_ctg)
        self.ctg_accum[ctg] += y_sum

    def accumulate(self, idx: int) -> bool:
        y_sum = float(self.cell.y_sum[idx])
        self.sum -= y_sum
        self.s_count -= int(self.cell.s_count[idx])
        self._shift_ctg(int(self.cell.ctg[idx]), y_sum)
        return bool(self.cell.is_tied(idx))

    def accumulate_residual(self) -> None:
        implicit = self.cell.implicit
        self.sum -= implicit.sum
        self.s_count -= implicit.s_count
        for ctg, y_sum in enumerate(implicit.ctg_sum):
            if y_sum != 0.0:
                self._shift_ctg(ctg, float(y_sum))

    def trial_info(self) -> float:
        return self.info_gini(self.ss_l, self.ss_r, self.sum, self.sum_total - self.sum)
