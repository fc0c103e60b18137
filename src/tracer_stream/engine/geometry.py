"""Batched ray/scene intersection.

Every hitter answers ``hit(rays, t_min, t_max)`` for a whole batch of rays at
once and returns a :class:`HitBatch`. ``t_max`` is per ray so a BVH can shrink
the search interval of its right child with the hits of the left one.
"""

from __future__ import annotations

import itertools
from dataclasses import dataclass
from typing import Optional, Protocol, Sequence, runtime_checkable

import numpy as np

T_MIN = 0.001

_uids = itertools.count(1)


class SceneError(ValueError):
    """Raised when a hitter hierarchy cannot be built."""


@dataclass
class Rays:
    origins: np.ndarray
    directions: np.ndarray

    def __len__(self) -> int:
        return int(self.origins.shape[0])

    def at(self, t: np.ndarray) -> np.ndarray:
        return self.origins + self.directions * t[:, None]

    def take(self, mask: np.ndarray) -> "Rays":
        return Rays(self.origins[mask], self.directions[mask])


@dataclass(frozen=True)
class Ray:
    origin: np.ndarray
    direction: np.ndarray

    def batch(self) -> Rays:
        return Rays(
            np.asarray(self.origin, dtype=np.float64).reshape(1, 3),
            np.asarray(self.direction, dtype=np.float64).reshape(1, 3),
        )


@dataclass
class HitBatch:
    """Closest-hit records for a ray batch; ``prim`` is 0 where nothing was hit."""

    hit: np.ndarray
    t: np.ndarray
    point: np.ndarray
    normal: np.ndarray
    front_face: np.ndarray
    prim: np.ndarray

    @classmethod
    def miss(cls, n: int) -> "HitBatch":
        return cls(
            hit=np.zeros(n, dtype=bool),
            t=np.full(n, np.inf),
            point=np.zeros((n, 3)),
            normal=np.zeros((n, 3)),
            front_face=np.zeros(n, dtype=bool),
            prim=np.zeros(n, dtype=np.int64),
        )

    def take(self, mask: np.ndarray) -> "HitBatch":
        return HitBatch(
            hit=self.hit[mask],
            t=self.t[mask],
            point=self.point[mask],
            normal=self.normal[mask],
            front_face=self.front_face[mask],
            prim=self.prim[mask],
        )

    def update(self, mask: np.ndarray, other: "HitBatch") -> None:
        """Overwrite rows selected by ``mask`` with the hits found in ``other``."""
        idx = np.flatnonzero(mask)[other.hit]
        self.hit[idx] = True
        self.t[idx] = other.t[other.hit]
        self.point[idx] = other.point[other.hit]
        self.normal[idx] = other.normal[other.hit]
        self.front_face[idx] = other.front_face[other.hit]
        self.prim[idx] = other.prim[other.hit]


@dataclass(frozen=True)
class HitRecord:
    """Single-ray hit result; ``node`` is the BVH leaf holding the primitive."""

    hit: bool
    node: Optional["BVHNode"] = None
    t: float = float("inf")


@dataclass(frozen=True)
class AABB:
    minimum: np.ndarray
    maximum: np.ndarray

    def hit(self, rays: Rays, t_min: float, t_max: np.ndarray) -> np.ndarray:
        with np.errstate(divide="ignore", invalid="ignore"):
            inv = 1.0 / rays.directions
            t0 = (self.minimum - rays.origins) * inv
            t1 = (self.maximum - rays.origins) * inv
        lo = np.nan_to_num(np.minimum(t0, t1), nan=-np.inf)
        hi = np.nan_to_num(np.maximum(t0, t1), nan=np.inf)
        enter = np.maximum(lo.max(axis=1), t_min)
        leave = np.minimum(hi.min(axis=1), t_max)
        return leave > enter

    @staticmethod
    def surrounding(a: "AABB", b: "AABB") -> "AABB":
        return AABB(np.minimum(a.minimum, b.minimum), np.maximum(a.maximum, b.maximum))


@runtime_checkable
class Hitter(Protocol):
    """Anything rays can be intersected with."""

    def hit(self, rays: Rays, t_min: float, t_max: np.ndarray) -> HitBatch: ...

    def bounding_box(self) -> AABB: ...

    def primitives(self) -> list["Sphere"]: ...


class Sphere:
    def __init__(self, center: Sequence[float], radius: float, material: object) -> None:
        self.center = np.asarray(center, dtype=np.float64)
        self.radius = float(radius)
        self.material = material
        self.uid = next(_uids)

    def __repr__(self) -> str:
        return f"Sphere(center={self.center.tolist()}, radius={self.radius}, uid={self.uid})"

    def hit(self, rays: Rays, t_min: float, t_max: np.ndarray) -> HitBatch:
        n = len(rays)
        out = HitBatch.miss(n)
        oc = rays.origins - self.center
        a = np.einsum("ij,ij->i", rays.directions, rays.directions)
        half_b = np.einsum("ij,ij->i", oc, rays.directions)
        c = np.einsum("ij,ij->i", oc, oc) - self.radius * self.radius
        disc = half_b * half_b - a * c
        ok = disc >= 0.0
        sqrtd = np.sqrt(np.where(ok, disc, 0.0))
        near = (-half_b - sqrtd) / a
        far = (-half_b + sqrtd) / a
        near_ok = ok & (near > t_min) & (near < t_max)
        far_ok = ok & ~near_ok & (far > t_min) & (far < t_max)
        found = near_ok | far_ok
        if not found.any():
            return out
        t = np.where(near_ok, near, far)
        point = rays.at(np.where(found, t, 0.0))
        # negative radius flips the normal, giving hollow glass shells
        outward = (point - self.center) / self.radius
        front = np.einsum("ij,ij->i", rays.directions, outward) < 0.0
        normal = np.where(front[:, None], outward, -outward)
        out.hit = found
        out.t = np.where(found, t, np.inf)
        out.point = point
        out.normal = normal
        out.front_face = front & found
        out.prim = np.where(found, self.uid, 0)
        return out

    def bounding_box(self) -> AABB:
        r = abs(self.radius)
        return AABB(self.center - r, self.center + r)

    def primitives(self) -> list["Sphere"]:
        return [self]


class HitterList:
    """Linear scan over a handful of hitters."""

    def __init__(self, items: Sequence[Hitter]) -> None:
        self.items = list(items)

    def __len__(self) -> int:
        return len(self.items)

    def hit(self, rays: Rays, t_min: float, t_max: np.ndarray) -> HitBatch:
        out = HitBatch.miss(len(rays))
        closest = np.array(t_max, dtype=np.float64, copy=True)
        everything = np.ones(len(rays), dtype=bool)
        for item in self.items:
            rec = item.hit(rays, t_min, closest)
            out.update(everything, rec)
            closest = np.where(rec.hit, rec.t, closest)
        return out

    def bounding_box(self) -> AABB:
        if not self.items:
            raise SceneError("empty hitter list has no bounding box")
        box = self.items[0].bounding_box()
        for item in self.items[1:]:
            box = AABB.surrounding(box, item.bounding_box())
        return box

    def primitives(self) -> list["Sphere"]:
        prims: list[Sphere] = []
        for item in self.items:
            prims.extend(item.primitives())
        return prims


class BVHNode:
    """Bounding volume hierarchy node.

    Leaves hold a single hitter in ``left`` with ``right`` set to ``None``.
    Single-ray hit tests return the leaf so callers can isolate the
    sub-tree that was under the pointer.
    """

    def __init__(self, left: Hitter, right: Optional[Hitter], box: AABB) -> None:
        self.left = left
        self.right = right
        self.box = box
        self._leaves: dict[int, BVHNode] = {}

    @classmethod
    def build(cls, hitters: Sequence[Hitter], *, axis: int = 0) -> "BVHNode":
        items = list(hitters)
        if not items:
            raise SceneError("cannot build a BVH from an empty scene")
        node = cls._build(items, axis)
        node._leaves = {}
        for leaf in node.leaves():
            for prim in leaf.left.primitives():
                node._leaves[prim.uid] = leaf
        return node

    @classmethod
    def _build(cls, items: list[Hitter], axis: int) -> "BVHNode":
        if len(items) == 1:
            return cls(items[0], None, items[0].bounding_box())
        items.sort(key=lambda h: float(h.bounding_box().minimum[axis]))
        mid = len(items) // 2
        nxt = (axis + 1) % 3
        left = cls._build(items[:mid], nxt)
        right = cls._build(items[mid:], nxt)
        return cls(left, right, AABB.surrounding(left.box, right.box))

    def is_leaf(self) -> bool:
        return self.right is None

    def leaves(self) -> list["BVHNode"]:
        if self.is_leaf():
            return [self]
        found = []
        for child in (self.left, self.right):
            if isinstance(child, BVHNode):
                found.extend(child.leaves())
        return found

    def hit(self, rays: Rays, t_min: float, t_max: np.ndarray) -> HitBatch:
        n = len(rays)
        out = HitBatch.miss(n)
        t_max = np.broadcast_to(np.asarray(t_max, dtype=np.float64), (n,))
        mask = self.box.hit(rays, t_min, t_max)
        if not mask.any():
            return out
        sub = rays.take(mask)
        limit = t_max[mask]
        left = self.left.hit(sub, t_min, limit)
        out.update(mask, left)
        if self.right is not None:
            right = self.right.hit(sub, t_min, np.where(left.hit, left.t, limit))
            out.update(mask, right)
        return out

    def bounding_box(self) -> AABB:
        return self.box

    def primitives(self) -> list["Sphere"]:
        prims = list(self.left.primitives())
        if self.right is not None:
            prims.extend(self.right.primitives())
        return prims

    def hit_one(self, ray: Ray, t_min: float = T_MIN) -> HitRecord:
        rec = self.hit(ray.batch(), t_min, np.array([np.inf]))
        if not bool(rec.hit[0]):
            return HitRecord(hit=False)
        leaf = self._leaves.get(int(rec.prim[0]))
        return HitRecord(hit=True, node=leaf, t=float(rec.t[0]))


__all__ = [
    "AABB",
    "BVHNode",
    "HitBatch",
    "HitRecord",
    "Hitter",
    "HitterList",
    "Ray",
    "Rays",
    "SceneError",
    "Sphere",
    "T_MIN",
]
