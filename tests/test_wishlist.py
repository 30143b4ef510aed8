from bson import ObjectId

from Models.wishlistModel import Wishlist

WISHLIST_URL = "/api/v1/wishlist"


class TestWishlist:
    def test_created_empty_on_first_read(self, client, user_headers):
        resp = client.get(WISHLIST_URL, headers=user_headers)
        assert resp.status_code == 200
        assert resp.get_json()["data"]["wishlist"]["items"] == []

    def test_add_and_remove(self, client, user, user_headers, make_product):
        dress = make_product()

        added = client.post(f"{WISHLIST_URL}/add/{dress.id}", headers=user_headers).get_json()
        assert added["message"] == "Product added to wishlist"
        assert [it["product"]["id"] for it in added["data"]["wishlist"]["items"]] == [str(dress.id)]

        resp = client.delete(f"{WISHLIST_URL}/remove/{dress.id}", headers=user_headers)
        assert resp.get_json()["data"]["wishlist"]["items"] == []
        assert Wishlist.objects.get(user=user.id).items == []

    def test_duplicate_add(self, client, user_headers, make_product):
        dress = make_product()
        client.post(f"{WISHLIST_URL}/add/{dress.id}", headers=user_headers)
        resp = client.post(f"{WISHLIST_URL}/add/{dress.id}", headers=user_headers)
        assert resp.status_code == 400
        assert resp.get_json()["message"] == "Product already in wishlist"

    def test_unknown_product(self, client, user_headers):
        assert client.post(f"{WISHLIST_URL}/add/{ObjectId()}", headers=user_headers).status_code == 404
        assert client.post(f"{WISHLIST_URL}/add/not-an-id", headers=user_headers).status_code == 404

    def test_remove_without_wishlist(self, client, user_headers):
        resp = client.delete(f"{WISHLIST_URL}/remove/{ObjectId()}", headers=user_headers)
        assert resp.status_code == 404

    def test_clear(self, client, user_headers, make_product):
        client.post(f"{WISHLIST_URL}/add/{make_product().id}", headers=user_headers)
        resp = client.delete(f"{WISHLIST_URL}/clear", headers=user_headers)
        assert resp.get_json()["data"]["wishlist"]["total_items"] == 0

    def test_deleted_products_are_dropped(self, client, user, user_headers, make_product):
        gone = make_product("Discontinued")
        client.post(f"{WISHLIST_URL}/add/{gone.id}", headers=user_headers)
        gone.delete()

        wishlist = client.get(WISHLIST_URL, headers=user_headers).get_json()["data"]["wishlist"]

        assert wishlist["items"] == []
        assert Wishlist.objects.get(user=user.id).items == []

    def test_requires_token(self, client):
        assert client.get(WISHLIST_URL).status_code == 401
