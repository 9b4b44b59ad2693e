# Copyright (c) 2017 the Parsnip team, see AUTHORS.
# Licensed under the BSD License, see LICENSE for details.

"""Tests for :mod:`parsnip.collection` module."""

import json

from parsnip import Collection

from tests.models import Post


def test_first_and_last():
    first, last = Post({'title': 'a'}), Post({'title': 'b'})
    assert Collection([first, last]).first() is first
    assert Collection([first, last]).last() is last
    assert Collection().first() is None
    assert Collection().last('default') == 'default'


def test_pluck_and_ids():
    posts = Collection([Post.pointer('abc'), Post({'title': 'b'})])
    assert posts.pluck('title') == [None, 'b']
    assert posts.ids() == ['abc', None]


def test_to_dict_and_json():
    posts = Collection([Post.create({'title': 'a'}), Post.create({'title': 'b'})])
    assert [p['title'] for p in posts.to_dict()] == ['a', 'b']
    assert json.loads(posts.to_json()) == posts.to_dict()
